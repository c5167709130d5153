"""
Consistency monitoring for replica-sync.

Count-based drift detection and identifier-level reconciliation.
"""

from .drift import DriftDetector
from .reconciler import ReconciliationEngine

__all__ = [
    "DriftDetector",
    "ReconciliationEngine"
]
