"""
Budget Management Module

Token budget allocation across snapshot categories.
"""

from .allocator import CATEGORY_PRIORITY, MIN_CATEGORY_ALLOCATION, STRICT_PERCENT, BudgetAllocator
from .models import BudgetAllocation, allocation_overrun, total_allocated

__all__ = [
    "BudgetAllocator",
    "BudgetAllocation",
    "allocation_overrun",
    "total_allocated",
    "STRICT_PERCENT",
    "CATEGORY_PRIORITY",
    "MIN_CATEGORY_ALLOCATION",
]
