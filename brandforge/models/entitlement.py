"""
brandforge/models/entitlement.py

Entitlement models: what a team may still do for free and what it has paid for.
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict


class ActionType(str, Enum):
    IMAGE_GENERATION = "image_generation"
    PERSONA_CREATION = "persona_creation"
    THEME_CREATION = "theme_creation"
    BRAND_CREATION = "brand_creation"


class CreditPool(str, Enum):
    """Column of team_entitlements a debit is taken from."""
    CREDITS = "credits"
    IMAGE_CREDITS = "image_credits"


class EntitlementState(BaseModel):
    """
    Per team, per action type snapshot.

    Invariants after any committed transaction:
    - free_uses_consumed <= free_uses_granted
    - metered_balance >= 0
    """
    model_config = ConfigDict(frozen=True)

    team_id: str
    action_type: ActionType
    free_uses_granted: int
    free_uses_consumed: int
    metered_balance: int

    @property
    def free_remaining(self) -> int:
        return max(0, self.free_uses_granted - self.free_uses_consumed)


class PrecheckResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    action_type: ActionType
    allowed: bool
    is_free: bool
    free_remaining: int
    balance: int
    required: int = 1
