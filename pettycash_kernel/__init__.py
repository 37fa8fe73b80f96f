"""
Petty-Cash Kernel

Per-account cash balances maintained through typed ledger transactions:
- Limit-checked expense recording
- Approval gating with exactly-once balance application
- Cash-count reconciliation with variance adjustments
- Replenishment request / approval / disbursement
"""

__version__ = "0.1.0"
