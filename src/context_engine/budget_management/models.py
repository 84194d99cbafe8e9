"""
Budget Management Models
"""

from pydantic import BaseModel, ConfigDict, Field

from ..context.models import ItemType


class BudgetAllocation(BaseModel):
    """Token budget assigned to one snapshot category."""

    model_config = ConfigDict(frozen=True)

    category: ItemType
    allocated: int = Field(ge=0, description="Tokens assigned to the category")
    used: int = Field(ge=0, description="Tokens the category currently occupies")
    remaining: int = Field(ge=0, description="Unused share of the allocation")
    priority: int = Field(ge=0, le=10, description="Category priority, higher is kept longer")
    is_flexible: bool = Field(default=False, description="Allocation may be reassigned if underused")

    @property
    def overage(self) -> int:
        """Tokens used beyond the allocation."""
        return max(0, self.used - self.allocated)


def total_allocated(allocations: list[BudgetAllocation]) -> int:
    return sum(a.allocated for a in allocations)


def allocation_overrun(allocations: list[BudgetAllocation], total_budget: int) -> int:
    """Tokens allocated beyond the total budget (0 when within budget)."""
    return max(0, total_allocated(allocations) - total_budget)
