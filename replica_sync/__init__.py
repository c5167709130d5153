"""
replica-sync process package

The replication service object and its command-line interface.
"""

__version__ = "1.0.0"

from .service import ReplicaSyncService

__all__ = ["ReplicaSyncService"]
