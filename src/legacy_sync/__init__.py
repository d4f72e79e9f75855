"""Legacy Sync - reconcile legacy platform records into the relational store."""

import logging

__version__ = "0.1.0"
__author__ = "Platform Data Team"
__license__ = "Apache-2.0"

# Keep third-party chatter out of sync run output
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpcore.connection").setLevel(logging.WARNING)
logging.getLogger("httpcore.http11").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
