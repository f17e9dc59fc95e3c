from __future__ import annotations

from .metrics import Metrics, pct_summary
from .reporting import Reporter

__all__ = [
    "Metrics",
    "pct_summary",
    "Reporter",
]
