"""Directory reconciliation."""
from .reconciler import ReconciliationEngine

__all__ = ["ReconciliationEngine"]
