from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

PAY_CURRENCY = "usdttrc20"
PRICE_CURRENCY = "usd"

SUPPORTED_CURRENCIES = [
    {
        "code": PAY_CURRENCY,
        "name": "USDT (TRC20)",
        "network": "TRON",
        "min_amount": 1,
        "description": "Tether USD on TRON network - Fast & Low fees",
    },
]


class DonationStatus(str, Enum):
    WAITING = "waiting"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    SENDING = "sending"
    PARTIALLY_PAID = "partially_paid"
    FINISHED = "finished"
    FAILED = "failed"
    REFUNDED = "refunded"
    EXPIRED = "expired"


STATUS_VALUES = frozenset(s.value for s in DonationStatus)
PAID_STATUSES = (DonationStatus.FINISHED.value, DonationStatus.CONFIRMED.value)

# Position along the happy path; absorbing states have no rank.
STATUS_RANK = {
    DonationStatus.WAITING: 0,
    DonationStatus.CONFIRMING: 1,
    DonationStatus.CONFIRMED: 2,
    DonationStatus.PARTIALLY_PAID: 2,
    DonationStatus.SENDING: 3,
    DonationStatus.FINISHED: 4,
}

ABSORBING_STATUSES = (DonationStatus.FAILED, DonationStatus.REFUNDED, DonationStatus.EXPIRED)
TERMINAL_STATUSES = ABSORBING_STATUSES + (DonationStatus.FINISHED,)


def transition_allowed(current: DonationStatus, new: DonationStatus) -> bool:
    """Monotonic transition table for webhook-driven status changes.

    Re-reporting the current status is always allowed. Terminal states
    accept nothing else. Failure states are reachable from any open state,
    and the happy path only moves forward.
    """
    if current == new:
        return True
    if current in TERMINAL_STATUSES:
        return False
    if new in ABSORBING_STATUSES:
        return True
    return STATUS_RANK[new] >= STATUS_RANK[current]


class DonationCreate(BaseModel):
    amount: Any = None
    donor_name: Optional[str] = None
    donor_email: Optional[str] = None
    message: Optional[str] = None


class IpnNotification(BaseModel):
    """Typed view of a gateway webhook body. Unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore")

    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    payment_status: DonationStatus
    actually_paid: Optional[float] = None

    @field_validator("payment_id", "order_id", mode="before")
    @classmethod
    def _identifier_as_text(cls, value):
        # the gateway sends numeric payment ids
        if value is None or value == "":
            return None
        return str(value)

    @property
    def is_paid(self) -> bool:
        return self.payment_status.value in PAID_STATUSES


class GatewayPayment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payment_id: str
    pay_amount: Optional[float] = None
    pay_currency: str = PAY_CURRENCY
    pay_address: Optional[str] = None
    payment_status: Optional[str] = None
    expiration_estimate_date: Optional[str] = None

    @field_validator("payment_id", mode="before")
    @classmethod
    def _payment_id_as_text(cls, value):
        return value if value is None else str(value)
