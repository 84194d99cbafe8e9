"""
Relevance scoring result types.
"""

from pydantic import BaseModel, ConfigDict, Field

from ..context.models import ItemType


class RelevanceFactor(BaseModel):
    """One weighted factor contributing to a relevance score."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: float = Field(ge=0.0, le=1.0)
    weight: float = Field(ge=0.0, le=1.0)

    @property
    def contribution(self) -> float:
        return self.value * self.weight


class RelevanceResult(BaseModel):
    """Derived relevance of one snapshot entry. Read-only and never persisted."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    item_type: ItemType
    final_score: float = Field(ge=0.0, le=1.0)
    factors: tuple[RelevanceFactor, ...] = ()

    def factor(self, name: str) -> RelevanceFactor | None:
        for factor in self.factors:
            if factor.name == name:
                return factor
        return None
