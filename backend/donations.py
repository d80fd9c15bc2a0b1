import logging
import secrets
import string
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from pydantic import ValidationError

from backend.config import Settings
from backend.donation_store import DonationStore
from backend.errors import DonationError, DonationNotFound, InvalidAmount, InvalidNotification, InvalidPayload, InvalidSignature
from backend.gateway import NowPaymentsClient
from backend.models import STATUS_VALUES, DonationStatus, IpnNotification, PAY_CURRENCY, transition_allowed
from backend.signature import verify_signature

logger = logging.getLogger(__name__)

MIN_AMOUNT = Decimal("1")
MAX_AMOUNT = Decimal("100")
DEMO_PAYMENT_TTL = timedelta(hours=1)
ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
# attempts at the status compare-and-set before giving up on a racing writer
RECONCILE_ATTEMPTS = 3


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_order_id() -> str:
    suffix = ''.join(secrets.choice(ORDER_SUFFIX_ALPHABET) for _ in range(12))
    return f"DON-{int(time.time() * 1000)}-{suffix}"


def parse_amount(raw: Any) -> float:
    if raw is None or isinstance(raw, bool):
        raise InvalidAmount()
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount()
    if not amount.is_finite() or amount < MIN_AMOUNT or amount > MAX_AMOUNT:
        raise InvalidAmount()
    return float(amount)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _format_usd(amount: float) -> str:
    return str(int(amount)) if amount.is_integer() else repr(amount)


class DonationService:
    """Creates donation intents and reconciles gateway notifications into them."""

    def __init__(self, settings: Settings, store: DonationStore, gateway: Optional[NowPaymentsClient] = None):
        self.settings = settings
        self.store = store
        self.gateway = gateway

    async def create_intent(self, amount: Any, donor_name: Optional[str] = None,
                            donor_email: Optional[str] = None, message: Optional[str] = None,
                            origin: str = "") -> Dict[str, Any]:
        amount_usd = parse_amount(amount)
        order_id = generate_order_id()
        doc = {
            "order_id": order_id,
            "donor_name": _clean(donor_name),
            "donor_email": _clean(donor_email),
            "donor_message": _clean(message),
            "amount_usd": amount_usd,
            "actually_paid": None,
            "paid_at": None,
            "created_at": now_iso(),
        }
        doc["updated_at"] = doc["created_at"]

        if self.settings.demo_mode:
            logger.debug(f"Demo mode: creating offline donation {order_id}")
            doc.update({
                "payment_id": f"demo_{int(time.time() * 1000)}_{secrets.token_hex(4)}",
                "pay_currency": PAY_CURRENCY,
                "pay_amount": amount_usd,
                "pay_address": self.settings.donation_wallet_address,
                "status": DonationStatus.WAITING.value,
            })
            await self.store.insert(doc)
            expires_at = (datetime.now(timezone.utc) + DEMO_PAYMENT_TTL).isoformat()
            logger.info(f"Donation {order_id} created (demo) for ${_format_usd(amount_usd)}")
            return {**_intent_response(doc, expires_at), "demo_mode": True}

        origin = origin.rstrip("/")
        payment = await self.gateway.create_payment(
            amount=amount_usd,
            order_id=order_id,
            order_description=f"Donation to FIFA World Cup 2026 Project - ${_format_usd(amount_usd)}",
            webhook_url=f"{origin}/donate/ipn",
            success_url=f"{origin}/?donation=success",
            cancel_url=f"{origin}/?donation=cancelled",
        )
        status = payment.payment_status if payment.payment_status in STATUS_VALUES else None
        doc.update({
            "payment_id": payment.payment_id,
            "pay_currency": payment.pay_currency,
            "pay_amount": payment.pay_amount,
            "pay_address": payment.pay_address,
            "status": status or DonationStatus.WAITING.value,
        })
        try:
            await self.store.insert(doc)
        except DonationError:
            logger.error(f"Gateway payment {payment.payment_id} for {order_id} has no local donation record")
            raise
        logger.info(f"Donation {order_id} created with gateway payment {payment.payment_id}")
        return _intent_response(doc, payment.expiration_estimate_date)

    async def reconcile(self, payload: Any, signature: Optional[str] = None) -> Dict[str, Any]:
        """Apply one webhook notification to its donation.

        Safe to replay: the same payload leaves the record unchanged, and
        ``paid_at`` is only ever set by the first paid notification.
        """
        if not isinstance(payload, dict):
            raise InvalidPayload()
        if signature:
            if not verify_signature(payload, signature, self.settings.nowpayments_ipn_secret):
                logger.warning("Rejected IPN with invalid signature")
                raise InvalidSignature()
        elif self.settings.ipn_require_signature:
            logger.warning("Rejected unsigned IPN")
            raise InvalidSignature()

        try:
            notification = IpnNotification.model_validate(payload)
        except ValidationError:
            raise InvalidNotification()
        if not notification.payment_id and not notification.order_id:
            raise InvalidNotification()

        for _ in range(RECONCILE_ATTEMPTS):
            donation = await self.store.find_by_reference(notification.payment_id, notification.order_id)
            if not donation:
                logger.error(f"IPN for unknown donation: payment_id={notification.payment_id} order_id={notification.order_id}")
                raise DonationNotFound()

            current = DonationStatus(donation["status"])
            new = notification.payment_status
            if self.settings.ipn_enforce_status_order and not transition_allowed(current, new):
                logger.warning(f"Ignored IPN for {donation['order_id']}: {current.value} -> {new.value} is not allowed")
                return donation

            update = {
                "status": new.value,
                "actually_paid": notification.actually_paid,
                "updated_at": now_iso(),
            }
            if await self.store.update_status(donation["order_id"], current.value, update):
                donation.update(update)
                break
        else:
            # lost every race; the concurrent writers' state stands
            logger.warning(f"IPN for {donation['order_id']} lost {RECONCILE_ATTEMPTS} concurrent updates, not applied")
            return donation

        if notification.is_paid:
            paid_at = now_iso()
            if await self.store.mark_paid(donation["order_id"], paid_at):
                donation["paid_at"] = paid_at
        logger.info(f"Donation {donation['order_id']} updated: {new.value}")
        return donation

    async def get_status(self, order_id: str) -> Dict[str, Any]:
        donation = await self.store.find_by_order_id(order_id)
        if not donation:
            raise DonationNotFound()
        return {
            "order_id": donation["order_id"],
            "amount_usd": donation["amount_usd"],
            "status": donation["status"],
            "donor_name": donation.get("donor_name"),
            "created_at": donation.get("created_at"),
            "paid_at": donation.get("paid_at"),
        }


def _intent_response(doc: Dict[str, Any], expires_at: Optional[str]) -> Dict[str, Any]:
    return {
        "success": True,
        "payment_id": doc["payment_id"],
        "pay_address": doc["pay_address"],
        "pay_amount": doc["pay_amount"],
        "pay_currency": doc["pay_currency"],
        "order_id": doc["order_id"],
        "expires_at": expires_at,
    }
