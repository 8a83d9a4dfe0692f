"""Payment/Signing collaborator client.

Async HTTP via httpx. The collaborator returns opaque signatures and
settlement references; they are passed through verbatim and never verified
here. Every failure surfaces as ``UpstreamFailure`` with retry guidance.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from rentflow.domain.errors import UpstreamFailure

logger = logging.getLogger(__name__)

SIGNATURE_RETRY_GUIDANCE = "Retry signing, or sign with an external wallet and submit the signature directly."
PAYMENT_RETRY_GUIDANCE = "Retry the payment; the obligation stays open until a settlement is recorded."


class PaymentSigningClient:
    """Client for the external payment and signing service."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings) -> "PaymentSigningClient":
        return cls(
            base_url=settings.payment_gateway_url,
            api_key=settings.payment_gateway_api_key,
            timeout=settings.payment_gateway_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def initiate_signature(self, lease_id: str, party: str, wallet: dict) -> dict:
        """Ask the collaborator to sign *lease_id* for *party* with *wallet*.

        Returns:
            ``{"signature": ..., "signer_address": ...}``
        """
        data = await self._post(
            "/signatures",
            {"lease_id": lease_id, "party": party, "wallet": wallet},
            SIGNATURE_RETRY_GUIDANCE,
        )
        signature = data.get("signature")
        signer_address = data.get("signer_address") or wallet.get("address")
        if not signature or not signer_address:
            raise UpstreamFailure(
                "Signing service response did not include a signature",
                SIGNATURE_RETRY_GUIDANCE,
            )
        return {"signature": signature, "signer_address": signer_address}

    async def initiate_payment(self, obligation_id: str, amount: float, wallet: dict) -> dict:
        """Ask the collaborator to pay *obligation_id* from *wallet*.

        Returns:
            ``{"settlement_reference": ...}``
        """
        data = await self._post(
            "/payments",
            {"obligation_id": obligation_id, "amount": amount, "wallet": wallet},
            PAYMENT_RETRY_GUIDANCE,
        )
        reference = data.get("settlement_reference")
        if not reference:
            raise UpstreamFailure(
                "Payment service response did not include a settlement reference",
                PAYMENT_RETRY_GUIDANCE,
            )
        return {"settlement_reference": reference}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _post(self, path: str, payload: dict, retry_guidance: str) -> dict:
        if not self._base_url:
            raise UpstreamFailure("Payment/signing service is not configured", retry_guidance)

        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(path, json=payload, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("Payment/signing service HTTP error on %s: %s", path, exc)
            raise UpstreamFailure(
                f"Payment/signing service returned {exc.response.status_code}",
                retry_guidance,
            ) from exc
        except httpx.RequestError as exc:
            logger.warning("Payment/signing service request failed on %s: %s", path, exc)
            raise UpstreamFailure("Payment/signing service unreachable", retry_guidance) from exc
        except ValueError as exc:
            logger.warning("Payment/signing service sent invalid JSON on %s", path)
            raise UpstreamFailure("Payment/signing service sent an invalid response", retry_guidance) from exc

        if not isinstance(data, dict):
            raise UpstreamFailure("Payment/signing service sent an invalid response", retry_guidance)
        return data
