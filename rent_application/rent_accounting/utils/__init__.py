"""
Utility functions for rent accounting
"""

from .date_utils import (
    eomonth,
    edate,
    month_start,
    parse_date,
)

from .payments import (
    mark_paid,
    mark_partial,
    outstanding_amount,
    total_outstanding,
)

__all__ = [
    # Date utilities
    'eomonth',
    'edate',
    'month_start',
    'parse_date',

    # Payment rules
    'mark_paid',
    'mark_partial',
    'outstanding_amount',
    'total_outstanding',
]
