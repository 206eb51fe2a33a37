from enum import Enum
from pydantic import BaseModel, ConfigDict, Field

class PlanTier(str, Enum):
    # Order matters: it is the order of prices in the feed (indices 2, 3, 4)
    BEGINNER = "beginner"
    AVERAGE = "average"
    EXPERT = "expert"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: "str | PlanTier") -> "PlanTier | None":
        """Accepts a tier value ("expert") or a display name ("AVERAGE SKILLED")."""
        if isinstance(value, PlanTier):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip()
        for tier in cls:
            if key.lower() == tier.value or key.upper() == tier.display_name:
                return tier
        return None

_DISPLAY_NAMES = {
    PlanTier.BEGINNER: "BEGINNER",
    PlanTier.AVERAGE: "AVERAGE SKILLED",
    PlanTier.EXPERT: "EXPERT",
}

DEFAULT_PRICES: dict[PlanTier, float] = {
    PlanTier.BEGINNER: 2.40,
    PlanTier.AVERAGE: 4.50,
    PlanTier.EXPERT: 6.50,
}

class Plan(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: PlanTier
    # USD
    price: float = Field(ge=0)

    @property
    def name(self) -> str:
        return self.tier.display_name
