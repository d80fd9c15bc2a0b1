import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from backend.config import Settings
from backend.errors import GatewayError
from backend.models import GatewayPayment, PAY_CURRENCY, PRICE_CURRENCY

logger = logging.getLogger(__name__)


class NowPaymentsClient:
    """Outbound client for the NOWPayments REST API.

    Every call is bounded by the configured timeout. Failures of any kind
    (transport, non-2xx, unreadable body) surface as ``GatewayError``.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"x-api-key": api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "NowPaymentsClient":
        return cls(settings.nowpayments_api_url, settings.nowpayments_api_key, settings.nowpayments_timeout)

    async def create_payment(self, amount: float, order_id: str, order_description: str,
                             webhook_url: str, success_url: str, cancel_url: str,
                             source_currency: str = PRICE_CURRENCY,
                             target_currency: str = PAY_CURRENCY) -> GatewayPayment:
        body = {
            "price_amount": amount,
            "price_currency": source_currency,
            "pay_currency": target_currency,
            "order_id": order_id,
            "order_description": order_description,
            "ipn_callback_url": webhook_url,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        try:
            response = await self._client.post("/payment", json=body)
        except httpx.HTTPError as e:
            logger.error(f"NOWPayments transport error for {order_id}: {e!r}")
            raise GatewayError() from e

        if response.is_error:
            message = _error_message(response)
            logger.error(f"NOWPayments rejected {order_id} ({response.status_code}): {message}")
            raise GatewayError(message, upstream_status=response.status_code)

        try:
            return GatewayPayment.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"NOWPayments returned an unreadable payment for {order_id}: {e}")
            raise GatewayError() from e

    async def aclose(self):
        await self._client.aclose()


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return None
