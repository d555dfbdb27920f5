"""Daily usage counters and quota decisions."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class QuotaAction(str, Enum):
    JOURNAL_CREATE = "journal_create"
    BASIC_SUGGESTION = "basic_suggestion"


# Ledger column each action is counted in
LEDGER_FIELDS = {
    QuotaAction.JOURNAL_CREATE: "created_journals",
    QuotaAction.BASIC_SUGGESTION: "basic_suggestions_used",
}


class UsageCounters(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    date: str  # YYYY-MM-DD
    created_journals: int = 0
    basic_suggestions_used: int = 0

    def get(self, field: str) -> int:
        return getattr(self, field)


class QuotaDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    action: QuotaAction
    date: str
    premium: bool = False
    limit: Optional[int] = None  # None when unlimited
    used: int = 0
    remaining: Optional[int] = None
    reason: Optional[str] = None
    resets_at: Optional[datetime] = None
