"""
Webhook Signature Verification

PayPal signs every webhook transmission. We do not check the signature
locally; instead the transmission headers, our webhook id and the event are
posted back to PayPal's verify-webhook-signature API. A delivery counts as
verified only when PayPal answers with verification_status == "SUCCESS";
an HTTP 200 on its own is not enough.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog
from starlette.concurrency import run_in_threadpool

from payments.errors import PayPalApiError, VerificationError
from payments.paypal_client import PayPalClient

log = structlog.get_logger(__name__)

VERIFICATION_SUCCESS = "SUCCESS"


@dataclass(frozen=True)
class TransmissionHeaders:
    auth_algo: str
    cert_url: str
    transmission_id: str
    transmission_sig: str
    transmission_time: str

    HEADER_NAMES = {
        "auth_algo": "PAYPAL-AUTH-ALGO",
        "cert_url": "PAYPAL-CERT-URL",
        "transmission_id": "PAYPAL-TRANSMISSION-ID",
        "transmission_sig": "PAYPAL-TRANSMISSION-SIG",
        "transmission_time": "PAYPAL-TRANSMISSION-TIME",
    }

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "TransmissionHeaders":
        """Collect the PayPal transmission headers (case-insensitive).

        Raises:
            VerificationError: a header is missing or empty.
        """
        lowered = {k.lower(): v for k, v in headers.items()}
        values = {}
        missing = []
        for field, header in cls.HEADER_NAMES.items():
            value = lowered.get(header.lower())
            if not value:
                missing.append(header)
            values[field] = value
        if missing:
            raise VerificationError(
                f"Missing transmission headers: {', '.join(missing)}"
            )
        return cls(**values)


@dataclass(frozen=True)
class VerifiedWebhook:
    transmission_id: str
    verification_status: str


class WebhookSignatureVerifier:
    def __init__(self, client: PayPalClient, webhook_id: str):
        self.client = client
        self.webhook_id = webhook_id

    def build_request(
        self, headers: TransmissionHeaders, event: dict[str, Any]
    ) -> dict[str, Any]:
        return {
            "auth_algo": headers.auth_algo,
            "cert_url": headers.cert_url,
            "transmission_id": headers.transmission_id,
            "transmission_sig": headers.transmission_sig,
            "transmission_time": headers.transmission_time,
            "webhook_id": self.webhook_id,
            "webhook_event": event,
        }

    async def verify(
        self, headers: Mapping[str, str], event: dict[str, Any]
    ) -> VerifiedWebhook:
        """Verify one delivery.

        Raises:
            VerificationError: headers or configuration are missing, PayPal
                could not be reached in time, or it did not confirm the
                signature.
        """
        if not self.webhook_id:
            raise VerificationError("PAYPAL_WEBHOOK_ID is not configured")

        transmission = TransmissionHeaders.from_headers(headers)
        request = self.build_request(transmission, event)

        try:
            response = await run_in_threadpool(
                self.client.verify_webhook_signature, request
            )
        except PayPalApiError as e:
            raise VerificationError(f"Verification call failed: {e}") from e

        status = response.get("verification_status") if isinstance(response, dict) else None
        if status != VERIFICATION_SUCCESS:
            raise VerificationError(
                f"PayPal did not verify transmission {transmission.transmission_id}: "
                f"verification_status={status!r}"
            )

        log.debug(
            "webhook.verified",
            transmission_id=transmission.transmission_id,
        )
        return VerifiedWebhook(
            transmission_id=transmission.transmission_id,
            verification_status=status,
        )
