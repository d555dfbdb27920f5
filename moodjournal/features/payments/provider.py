"""
Payment gateway protocol.

Defines the interface every checkout gateway (PayOS, VNPay) implements so
reconciliation logic never depends on a specific gateway's wire format.
"""
from typing import Protocol, Dict, Any, Literal, Optional
from dataclasses import dataclass, field
from datetime import datetime

from moodjournal.core.errors import AppError


GatewayStatus = Literal["pending", "paid", "cancelled", "expired", "failed"]


@dataclass
class CheckoutLink:
    """Result of creating a hosted checkout."""
    checkout_url: str
    correlation_key: str


@dataclass
class GatewayEvent:
    """Verified gateway callback, normalized."""
    correlation_key: str
    succeeded: bool
    amount: Optional[int] = None
    raw_status: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    """
    Protocol for checkout gateways.

    Implementations must handle:
    - Hosted checkout creation
    - Live status lookup by correlation key
    - Callback signature verification and parsing
    """

    name: str

    def new_order_code(self, now: datetime) -> str:
        """Fresh correlation key in the gateway's accepted format."""
        ...

    def create_checkout(
        self,
        order_code: str,
        amount: int,
        description: str,
        *,
        now: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
    ) -> CheckoutLink:
        """
        Raises:
            GatewayCommunicationError: gateway unreachable or rejected the request
        """
        ...

    def get_status(self, correlation_key: str, *, created_at: Optional[datetime] = None) -> GatewayStatus:
        """
        Raises:
            GatewayCommunicationError: gateway unreachable or response unusable
        """
        ...

    def parse_webhook(self, payload: Dict[str, Any]) -> GatewayEvent:
        """
        Verify signature and normalize a callback payload.

        Raises:
            GatewayWebhookError: signature invalid or payload malformed
        """
        ...


class GatewayWebhookError(AppError):
    """Callback rejected: bad signature or malformed payload."""
    code = "invalid_webhook"
    status_code = 400
