"""
Payment gateway client - Thin HTTP wrapper around the payment provider

Only the calls the escrow machine needs: open a charge for the buyer and
refund a captured payment (fully or partially). Settlement itself is the
provider's concern; its outcome arrives asynchronously through the webhook.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol
from uuid import UUID

import httpx

from eventswap.infrastructure.settings import get_settings
from eventswap.services.exceptions import ProviderError

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    def create_charge(
        self,
        *,
        transaction_id: UUID,
        payer_id: UUID,
        amount: Decimal,
        due_at: Optional[datetime],
        description: str,
    ) -> str:
        """Open a charge; returns the provider payment id"""
        ...

    def refund(self, *, provider_payment_id: str, amount: Decimal, reason: str) -> str:
        """Refund a captured payment; returns the provider refund id"""
        ...


class HttpPaymentGateway:
    """httpx-backed gateway client"""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def create_charge(
        self,
        *,
        transaction_id: UUID,
        payer_id: UUID,
        amount: Decimal,
        due_at: Optional[datetime],
        description: str,
    ) -> str:
        payload = {
            "external_reference": str(transaction_id),
            "customer_reference": str(payer_id),
            "value": str(amount),
            "due_date": due_at.date().isoformat() if due_at else None,
            "description": description,
        }
        body = self._post("/payments", payload)
        return self._require(body, "id")

    def refund(self, *, provider_payment_id: str, amount: Decimal, reason: str) -> str:
        body = self._post(
            f"/payments/{provider_payment_id}/refund",
            {"value": str(amount), "description": reason},
        )
        return self._require(body, "id")

    def _post(self, path: str, payload: dict) -> dict:
        if not self.base_url:
            raise ProviderError(
                "Payment gateway not configured",
                code="PROVIDER_NOT_CONFIGURED",
                details={"hint": "Set PAYMENT_GATEWAY_URL and PAYMENT_GATEWAY_API_KEY"},
            )

        url = f"{self.base_url}{path}"
        try:
            response = self._client.post(
                url,
                json=payload,
                headers={"access_token": self.api_key, "Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Payment gateway returned an error",
                extra={"path": path, "status_code": e.response.status_code},
            )
            raise ProviderError(
                f"Payment gateway returned HTTP {e.response.status_code}",
                details={"path": path, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.error("Payment gateway unreachable", extra={"path": path, "error": str(e)})
            raise ProviderError("Payment gateway unreachable", details={"path": path}) from e

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError("Payment gateway returned a non-JSON body", details={"path": path}) from e

        if not isinstance(body, dict):
            raise ProviderError("Payment gateway returned an unexpected shape", details={"path": path})
        return body

    @staticmethod
    def _require(body: dict, key: str) -> str:
        value = body.get(key)
        if not value:
            raise ProviderError(
                f"Payment gateway response missing '{key}'",
                details={"keys": sorted(body.keys())},
            )
        return str(value)


def get_payment_gateway() -> PaymentGateway:
    """Dependency returning the configured gateway client"""
    settings = get_settings()
    return HttpPaymentGateway(
        base_url=settings.PAYMENT_GATEWAY_URL,
        api_key=settings.PAYMENT_GATEWAY_API_KEY,
        timeout_seconds=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
    )
