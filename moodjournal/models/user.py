from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict


PlanName = Literal["free", "premium"]


class User(BaseModel):
    """Snapshot of a user's account and stored plan state.

    ``plan`` is the stored label only. Whether premium is in force at a given
    instant is decided by ``features.premium.lifecycle.is_premium_active``.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    created_at: datetime
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: str = "user"
    status: str = "active"
    plan: PlanName = "free"
    premium_started_at: Optional[datetime] = None
    premium_expires_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @staticmethod
    def normalized_display_name(user_id: str, display_name: Optional[str] = None) -> str:
        if display_name and display_name.strip():
            return display_name.strip()
        # Deterministic fallback handle
        import hashlib
        h = hashlib.sha1(user_id.encode("utf-8")).hexdigest()
        return f"@u_{h[-6:]}"
