from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


PaymentStatus = Literal["pending", "success", "failed", "expired"]
TERMINAL_STATUSES = frozenset({"success", "failed", "expired"})


class Payment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    gateway: str
    gateway_order_code: str
    user_id: str
    amount: int
    payment_type: str = "premium_subscription"
    description: Optional[str] = None
    status: PaymentStatus = "pending"
    payment_url: Optional[str] = None
    payment_timeout: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_payment_expired(self, now: datetime) -> bool:
        """True once the checkout window has passed (status is not consulted)."""
        if self.payment_timeout is None:
            return False
        return now > self.payment_timeout
