from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


NotificationType = Literal[
    "premium_upgrade",
    "premium_expiring",
    "premium_expired",
    "payment_success",
    "payment_failed",
]


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    is_read: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    read_at: Optional[datetime] = None
