import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from app.core.config import Settings
from app.core.errors import GatewayUnavailable

logger = logging.getLogger(__name__)

STK_PUSH_PATH = "/payments/stk-push/"
STATUS_PATH = "/payments/status/"
VERIFY_PATH = "/payments/verify-payment/{reference}/"


class GatewayStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class StatusResult:
    status: GatewayStatus
    reason: str | None = None


@dataclass(frozen=True)
class InitiationResult:
    accepted: bool
    request_id: str | None = None
    reason: str | None = None


# ---------------------------
# response normalization
# ---------------------------

_SUCCESS_WORDS = {"success", "successful", "completed", "complete", "paid", "confirmed", "approved"}
_FAILED_WORDS = {
    "failed", "failure", "fail", "cancelled", "canceled", "rejected", "declined",
    "error", "timeout", "expired", "reversed",
}

# keys seen across gateway versions, most specific first
_STATUS_KEYS = ("payment_status", "status", "Status")
_RESULT_CODE_KEYS = ("ResultCode", "result_code")
_REQUEST_ID_KEYS = ("CheckoutRequestID", "checkout_request_id", "request_id")
_REASON_KEYS = ("ResultDesc", "reason", "message", "error_message", "detail", "error")


def _first(body: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = body.get(key)
        if value not in (None, ""):
            return value
    return None


def extract_reason(body: dict[str, Any]) -> str | None:
    reason = _first(body, _REASON_KEYS)
    return str(reason) if reason is not None else None


def extract_request_id(body: dict[str, Any]) -> str | None:
    request_id = _first(body, _REQUEST_ID_KEYS)
    return str(request_id) if request_id is not None else None


def _status_from_result_code(code: Any) -> GatewayStatus:
    # M-Pesa: 0 is paid, anything else (1 insufficient funds, 1032 cancelled, 1037 timeout...) is final failure
    return GatewayStatus.SUCCESS if str(code).strip() == "0" else GatewayStatus.FAILED


def normalize_status(body: dict[str, Any]) -> StatusResult:
    """
    Map whatever the gateway answered into pending / success / failed.
    Unknown words stay pending: nothing is unlocked on a status we don't understand.
    """
    reason = extract_reason(body)

    raw = _first(body, _STATUS_KEYS)
    if isinstance(raw, bool):
        return StatusResult(GatewayStatus.SUCCESS if raw else GatewayStatus.FAILED, reason)
    if raw is not None:
        word = str(raw).strip().lower()
        if word in _SUCCESS_WORDS:
            return StatusResult(GatewayStatus.SUCCESS, reason)
        if word in _FAILED_WORDS:
            return StatusResult(GatewayStatus.FAILED, reason)
        return StatusResult(GatewayStatus.PENDING, reason)

    code = _first(body, _RESULT_CODE_KEYS)
    if code is not None:
        return StatusResult(_status_from_result_code(code), reason)

    return StatusResult(GatewayStatus.PENDING, reason)


class PayHeroClient:
    """
    STK push gateway client.
    initiate / poll_status / verify_by_reference are all safe to repeat.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = settings.payhero_base_url.rstrip("/")
        self.platform = settings.payhero_platform
        self.account_id = settings.payhero_account_id
        self.timeout = settings.payhero_timeout_seconds
        self._auth_token = settings.payhero_auth_token
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._auth_token:
            headers["Authorization"] = f"Basic {self._auth_token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> tuple[int, dict[str, Any]]:
        """
        Returns (status_code, json) for anything the gateway answered below 500.
        Raises GatewayUnavailable on transport errors, 5xx and bodies that are not JSON.
        """
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.warning("PayHero %s %s failed: %s", method, path, e)
            raise GatewayUnavailable(f"Payment gateway request failed: {e}") from e

        if r.status_code >= 500:
            logger.warning("PayHero %s %s -> %s: %s", method, path, r.status_code, r.text[:200])
            raise GatewayUnavailable(f"Payment gateway error (HTTP {r.status_code})")

        if not r.content:
            return r.status_code, {}
        try:
            body = r.json()
        except ValueError as e:
            raise GatewayUnavailable(f"Payment gateway sent an unreadable response (HTTP {r.status_code})") from e
        if not isinstance(body, dict):
            raise GatewayUnavailable("Payment gateway sent an unexpected response")
        return r.status_code, body

    async def initiate(self, phone: str, amount: int, reference: str) -> InitiationResult:
        payload = {
            "phone_number": phone,
            "amount": amount,
            "reference": reference,
            "platform": self.platform,
            "account_id": self.account_id,
        }
        status_code, body = await self._request("POST", STK_PUSH_PATH, json=payload)
        logger.info("Payment initiated: ref=%s http=%s body=%s", reference, status_code, body)

        if status_code >= 400 or body.get("success") is False:
            return InitiationResult(accepted=False, reason=extract_reason(body))

        result = normalize_status(body)
        if result.status == GatewayStatus.FAILED:
            return InitiationResult(accepted=False, reason=result.reason)

        return InitiationResult(accepted=True, request_id=extract_request_id(body))

    async def poll_status(self, request_id: str) -> StatusResult:
        status_code, body = await self._request(
            "GET", STATUS_PATH, params={"checkout_request_id": request_id},
        )
        if status_code == 404:
            return StatusResult(GatewayStatus.PENDING)
        if status_code >= 400:
            raise GatewayUnavailable(f"Status check refused (HTTP {status_code})")
        return normalize_status(body)

    async def verify_by_reference(self, reference: str) -> StatusResult:
        status_code, body = await self._request("GET", VERIFY_PATH.format(reference=reference))
        if status_code == 404:
            # gateway has no record of the payment yet
            return StatusResult(GatewayStatus.PENDING)
        if status_code >= 400:
            raise GatewayUnavailable(f"Verification refused (HTTP {status_code})")
        return normalize_status(body)
