"""Selectors for the petty-cash kernel (read side)."""

from pettycash_kernel.selectors.reporting_selector import ReportingSelector

__all__ = [
    "ReportingSelector",
]
