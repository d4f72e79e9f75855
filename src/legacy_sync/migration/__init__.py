"""Sync pipeline: storage, identifier resolution, migrators and coordination."""
