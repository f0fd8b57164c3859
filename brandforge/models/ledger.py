"""
brandforge/models/ledger.py

Append-only credit ledger entry.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class LedgerEntry(BaseModel):
    """
    Immutable audit record written in the same transaction as the balance change.

    amount_debited is 0 for free uses, 1 for a metered debit and negative for
    grants (adjustments). balance_after == balance_before - amount_debited.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    team_id: str
    user_id: Optional[str] = None
    action_type: str
    amount_debited: int
    balance_before: int
    balance_after: int
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
