from datetime import UTC, datetime, timedelta
from typing import Any

import requests
import structlog
import tenacity

from core.logging import BusinessEvents
from core.settings import Settings
from payments.errors import PayPalApiError

_TOKEN_CACHE: tuple[str, datetime] | None = None

log = structlog.get_logger(__name__)


class PayPalClient:
    """Thin client for the PayPal REST endpoints this service calls.

    All calls are synchronous and bounded by PAYPAL_TIMEOUT_SECONDS; async
    callers run them through run_in_threadpool.
    """

    def __init__(self, settings: Settings):
        self.base = settings.PAYPAL_BASE.rstrip("/")
        self.client = settings.PAYPAL_CLIENT_ID
        self.secret = settings.PAYPAL_SECRET
        self.timeout = settings.PAYPAL_TIMEOUT_SECONDS

    def _token(self) -> str:
        global _TOKEN_CACHE
        if _TOKEN_CACHE and _TOKEN_CACHE[1] > datetime.now(UTC):
            return _TOKEN_CACHE[0]

        try:
            r = requests.post(
                f"{self.base}/v1/oauth2/token",
                auth=(self.client, self.secret),
                data={"grant_type": "client_credentials"},
                timeout=self.timeout,
            )
            r.raise_for_status()
            payload = r.json()
            tok = payload["access_token"]
        except (requests.RequestException, ValueError, KeyError) as e:
            log.error(BusinessEvents.PAYPAL_API_FAILURE, call="oauth2_token", error=str(e))
            raise PayPalApiError(f"PayPal token request failed: {e}") from e

        # Refresh a minute early so a token never expires mid-request.
        ttl = max(int(payload.get("expires_in", 360)) - 60, 60)
        _TOKEN_CACHE = (tok, datetime.now(UTC) + timedelta(seconds=ttl))
        return tok

    def _headers(self, request_id: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._token()}",
            "Content-Type": "application/json",
        }
        if request_id:
            headers["PayPal-Request-Id"] = request_id
        return headers

    def _post(self, path: str, body: dict[str, Any], request_id: str | None = None) -> dict[str, Any]:
        try:
            response = requests.post(
                f"{self.base}{path}",
                json=body,
                headers=self._headers(request_id),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log.error(BusinessEvents.PAYPAL_API_FAILURE, call=path, error=str(e))
            raise PayPalApiError(f"PayPal request to {path} failed: {e}") from e

        if response.status_code not in (200, 201):
            log.error(
                BusinessEvents.PAYPAL_API_FAILURE,
                call=path,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise PayPalApiError(
                f"PayPal request to {path} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise PayPalApiError(
                f"PayPal response from {path} is not JSON",
                status_code=response.status_code,
            ) from e

    def verify_webhook_signature(self, verification: dict[str, Any]) -> dict[str, Any]:
        """Ask PayPal whether a webhook transmission is authentic.

        Returns the decoded response body; interpreting verification_status is
        left to the caller.
        """
        return self._post("/v1/notifications/verify-webhook-signature", verification)

    @tenacity.retry(
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=1, min=1, max=8),
        retry=tenacity.retry_if_exception(
            lambda e: isinstance(e, PayPalApiError) and e.status_code is None
        ),
        reraise=True,
    )
    def create_order(self, order: dict[str, Any], request_id: str) -> dict[str, Any]:
        """Create a checkout order. Transport failures are retried; the
        PayPal-Request-Id header makes retries idempotent on PayPal's side."""
        return self._post("/v2/checkout/orders", order, request_id=request_id)
