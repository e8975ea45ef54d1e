"""
Jobs module for the RFE backend - estimate lifecycle and reconciliation.

This module handles:
- The Draft -> In Progress -> Completed -> Paid state machine
- Inventory and foam-set deduction on completion (applied once)
- Append-only material usage logging
- Cost of goods sold and margin on payment
"""

from .financials import compute_financials
from .lifecycle import CompletionResult, JobLifecycleEngine

__all__ = [
    "CompletionResult",
    "JobLifecycleEngine",
    "compute_financials",
]
