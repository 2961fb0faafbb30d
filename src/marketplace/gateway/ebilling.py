"""Live e-billing adapter over HTTP (httpx).

Requests use a bounded timeout and are attempted up to ``retry_attempts``
times on transport errors and 5xx responses. Whatever happens, the adapter
returns a result object; it never lets a network error escape.
"""

import time
from datetime import UTC, datetime

import httpx
import structlog

from marketplace.gateway.methods import config_for, format_phone_number, validate_phone_for_method
from marketplace.gateway.port import BillRequest, BillResult, PaymentGateway, StatusResult, UssdResult
from marketplace.gateway.settings import EbillingSettings
from marketplace.gateway.signing import bill_signature, verify_callback_signature
from marketplace.utils.references import generate_reference

logger = structlog.get_logger(__name__)


class EbillingGateway(PaymentGateway):
    def __init__(self, settings: EbillingSettings, client: httpx.Client | None = None) -> None:
        self.settings = settings
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(settings.timeout),
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    # -------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------
    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send with retries; re-raises the last transport error."""
        attempts = self.settings.retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                response = self._client.request(method, url, **kwargs)
            except httpx.TransportError as exc:
                if attempt == attempts:
                    raise
                logger.warning("E-billing request failed, retrying", url=url, attempt=attempt, error=str(exc))
            else:
                if response.status_code < 500 or attempt == attempts:
                    return response
                logger.warning(
                    "E-billing server error, retrying",
                    url=url,
                    attempt=attempt,
                    status_code=response.status_code,
                )
            time.sleep(self.settings.retry_backoff_seconds * attempt)

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    def build_bill_payload(self, request: BillRequest, bill_id: str) -> dict:
        method = config_for(request.payment_method)
        return {
            "merchant_id": self.settings.username,
            "bill_id": bill_id,
            "amount": request.amount,
            "currency": request.currency,
            "description": request.description,
            "payment_method": method.provider_code,
            "payer_name": request.payer_name,
            "payer_email": request.payer_email or "",
            "payer_phone": format_phone_number(request.payer_phone),
            "redirect_url": self.settings.redirect_url,
            "callback_url": self.settings.callback_url,
            "expiry_period": self.settings.expiry_period,
            "metadata": request.metadata,
            "signature": bill_signature(
                self.settings.username,
                request.amount,
                request.currency,
                request.payer_phone,
                self.settings.shared_key,
            ),
        }

    def create_bill(self, request: BillRequest) -> BillResult:
        bill_id = generate_reference(self.settings.bill_id_prefix, datetime.now(UTC))
        payload = self.build_bill_payload(request, bill_id)

        try:
            response = self._send("POST", self.settings.endpoint("create_bill"), json=payload)
        except httpx.HTTPError as exc:
            logger.error("E-billing bill creation failed", bill_id=bill_id, error=str(exc))
            return BillResult(success=False, bill_id=bill_id, error="Technical error while creating the bill")

        body = self._json(response)
        if not response.is_success:
            logger.error(
                "E-billing rejected bill",
                bill_id=bill_id,
                status_code=response.status_code,
                response=response.text[:500],
            )
            return BillResult(
                success=False,
                bill_id=bill_id,
                response=body,
                error=body.get("message") or "Error while creating the bill",
            )

        data = body.get("data") or {}
        logger.info("E-billing bill created", bill_id=data.get("bill_id", bill_id))
        return BillResult(
            success=True,
            bill_id=data.get("bill_id", bill_id),
            payment_url=data.get("payment_url"),
            external_reference=data.get("reference"),
            response=body,
        )

    def send_ussd_push(self, bill_id: str, phone: str, method: str) -> UssdResult:
        config = config_for(method)
        if not config.is_mobile_money:
            return UssdResult(success=False, error=f"{config.display_name} does not support USSD push")
        if not validate_phone_for_method(phone, method):
            logger.info("USSD push rejected: invalid phone", bill_id=bill_id, payment_method=str(method))
            return UssdResult(success=False, error=f"Invalid phone number for {config.display_name}")

        payload = {
            "bill_id": bill_id,
            "phone_number": format_phone_number(phone),
            "payment_system": config.provider_code,
        }
        try:
            response = self._send("POST", self.settings.endpoint("ussd_push", bill_id=bill_id), json=payload)
        except httpx.HTTPError as exc:
            logger.error("E-billing USSD push failed", bill_id=bill_id, error=str(exc))
            return UssdResult(success=False, error="Technical error while sending the USSD push")

        body = self._json(response)
        if not response.is_success:
            logger.warning("E-billing USSD push rejected", bill_id=bill_id, status_code=response.status_code)
            return UssdResult(success=False, response=body, error=body.get("message") or "USSD push failed")

        logger.info("E-billing USSD push sent", bill_id=bill_id)
        return UssdResult(success=True, message=body.get("message") or "USSD push sent", response=body)

    def check_status(self, bill_id: str) -> StatusResult:
        try:
            response = self._send("GET", self.settings.endpoint("status", bill_id=bill_id))
        except httpx.HTTPError as exc:
            logger.error("E-billing status check failed", bill_id=bill_id, error=str(exc))
            return StatusResult(success=False, error="Technical error while checking the bill status")

        body = self._json(response)
        if not response.is_success:
            logger.warning("E-billing status unavailable", bill_id=bill_id, status_code=response.status_code)
            return StatusResult(success=False, response=body, error="Unable to fetch the bill status")

        data = body.get("data") or {}
        return StatusResult(
            success=True,
            status=data.get("status", "unknown"),
            amount=data.get("amount"),
            paid_at=data.get("paid_at"),
            transaction_ref=data.get("transaction_ref"),
            response=body,
        )

    def verify_callback_signature(self, payload: dict) -> bool:
        return verify_callback_signature(payload, self.settings.shared_key)
