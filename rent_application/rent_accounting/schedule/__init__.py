"""
Rent schedule generation and reconciliation
"""

from .generator import (
    due_dates,
    generate_initial_schedule,
    reconcile_schedule,
    missing_periods,
)

__all__ = [
    'due_dates',
    'generate_initial_schedule',
    'reconcile_schedule',
    'missing_periods',
]
