"""Dejavoo SPIN REST client.

Talks to a physical card terminal through the SPIN proxy:
- Sale, Return, Void and Auth over POST v2/Payment/<Type>
- Every request carries the terminal's Tpn and Authkey
- SPInProxyTimeout (minutes) tells the proxy how long to wait for the customer

A call only counts as approved when ResultCode == "0" AND
StatusCode == "0000". Everything else raises DejavooApiError, whose flags
let the processor layer tell a decline from a terminal fault from a
timeout.
"""

from __future__ import annotations

import logging
import random
import time
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from app.quantities import quantize, to_decimal

logger = logging.getLogger(__name__)


PRODUCTION_BASE_URL = "https://api.spinpos.net"
SANDBOX_BASE_URL = "https://test.spinpos.net/spin"

RESULT_OK = "0"
RESULT_TERMINAL_ERROR = "TerminalError"
RESULT_API_ERROR = "ApiError"

STATUS_APPROVED = "0000"
STATUS_TIMEOUT = "2007"
STATUS_TERMINAL_UNAVAILABLE = "2011"
STATUS_INVALID_REQUEST = "2301"
STATUS_NETWORK_ERROR = "NETWORK_ERROR"

STATUS_MESSAGES = {
    STATUS_APPROVED: "Approved",
    STATUS_TIMEOUT: "Transaction timeout",
    STATUS_TERMINAL_UNAVAILABLE: "Terminal not available",
    STATUS_INVALID_REQUEST: "Invalid request",
}

PAYMENT_TYPES = ("Credit", "Debit", "EBT_Food", "EBT_Cash", "Card", "Cash", "Check", "Gift")

MAX_REFERENCE_ID_LENGTH = 50


class DejavooApiError(Exception):
    """A SPIN call that did not end in an approval."""

    def __init__(self, message: str, status_code: str, result_code: str, response: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.result_code = result_code
        self.response = response

    @property
    def is_declined(self) -> bool:
        return self.status_code != STATUS_APPROVED and self.result_code == RESULT_OK

    @property
    def is_terminal_error(self) -> bool:
        return self.result_code == RESULT_TERMINAL_ERROR

    @property
    def is_api_error(self) -> bool:
        return self.result_code == RESULT_API_ERROR

    @property
    def is_timeout(self) -> bool:
        return self.status_code == STATUS_TIMEOUT or "timeout" in self.message.lower()

    @property
    def is_terminal_unavailable(self) -> bool:
        return self.status_code == STATUS_TERMINAL_UNAVAILABLE

    def __repr__(self) -> str:
        return f"DejavooApiError({self.message!r}, status_code={self.status_code!r}, result_code={self.result_code!r})"


class DejavooClient:
    """Synchronous SPIN client.

    Pass ``client`` to supply a preconfigured httpx.Client (tests use one
    built on httpx.MockTransport); otherwise one is created and owned here.
    """

    def __init__(
        self,
        authkey: str,
        tpn: str,
        environment: str = "sandbox",
        timeout_minutes: int = 2,
        http_timeout: float = 150.0,
        client: Optional[httpx.Client] = None,
    ):
        if not authkey or not tpn:
            raise ValueError("Dejavoo authkey and tpn are required")
        self.authkey = authkey
        self.tpn = tpn
        self.environment = environment
        self.default_timeout = timeout_minutes or 2
        self.base_url = PRODUCTION_BASE_URL if environment == "production" else SANDBOX_BASE_URL
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=http_timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "DejavooClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def sale(
        self,
        amount,
        payment_type: str,
        reference_id: str,
        tip_amount=0,
        invoice_number: Optional[str] = None,
        print_receipt: str = "No",
        get_receipt: str = "Yes",
        get_extended_data: bool = True,
        timeout: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload = {
            "Amount": format_amount(amount),
            "TipAmount": format_amount(tip_amount or 0),
            "PaymentType": payment_type,
            "ReferenceId": reference_id,
            "InvoiceNumber": invoice_number,
            "PrintReceipt": print_receipt,
            "GetReceipt": get_receipt,
            "GetExtendedData": get_extended_data,
            "SPInProxyTimeout": timeout or self.default_timeout,
        }
        return self._request("v2/Payment/Sale", payload)

    def return_(
        self,
        amount,
        payment_type: str,
        reference_id: str,
        invoice_number: Optional[str] = None,
        print_receipt: str = "No",
        get_receipt: str = "Yes",
        get_extended_data: bool = True,
    ) -> Dict[str, Any]:
        payload = {
            "Amount": format_amount(amount),
            "PaymentType": payment_type,
            "ReferenceId": reference_id,
            "InvoiceNumber": invoice_number,
            "PrintReceipt": print_receipt,
            "GetReceipt": get_receipt,
            "GetExtendedData": get_extended_data,
        }
        return self._request("v2/Payment/Return", payload)

    def void(self, reference_id: str, print_receipt: str = "No", get_receipt: str = "Yes") -> Dict[str, Any]:
        payload = {
            "ReferenceId": reference_id,
            "PrintReceipt": print_receipt,
            "GetReceipt": get_receipt,
        }
        return self._request("v2/Payment/Void", payload)

    def auth(
        self,
        amount,
        payment_type: str,
        reference_id: str,
        invoice_number: Optional[str] = None,
        print_receipt: str = "No",
        get_receipt: str = "Yes",
        get_extended_data: bool = True,
    ) -> Dict[str, Any]:
        payload = {
            "Amount": format_amount(amount),
            "PaymentType": payment_type,
            "ReferenceId": reference_id,
            "InvoiceNumber": invoice_number,
            "PrintReceipt": print_receipt,
            "GetReceipt": get_receipt,
            "GetExtendedData": get_extended_data,
        }
        return self._request("v2/Payment/Auth", payload)

    def test_connection(self) -> bool:
        """Send a $1.00 Auth; True when the terminal approves it."""
        try:
            self.auth(
                amount=Decimal("1.00"),
                payment_type="Credit",
                reference_id=generate_reference_id("TEST"),
                get_extended_data=False,
            )
        except DejavooApiError as e:
            logger.warning("Dejavoo connection test failed (tpn=%s): %s", self.tpn, e)
            return False
        return True

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"
        body = {k: v for k, v in payload.items() if v is not None}
        body["Tpn"] = self.tpn
        body["Authkey"] = self.authkey

        try:
            resp = self._client.post(url, json=body)
        except httpx.TimeoutException as e:
            logger.error("Dejavoo %s timed out (tpn=%s): %s", endpoint, self.tpn, e)
            raise DejavooApiError("Terminal request timeout", STATUS_TIMEOUT, RESULT_API_ERROR) from e
        except httpx.TransportError as e:
            logger.error("Dejavoo %s network failure (tpn=%s): %s", endpoint, self.tpn, e)
            raise DejavooApiError(str(e) or "Network error", STATUS_NETWORK_ERROR, RESULT_TERMINAL_ERROR) from e

        if resp.status_code >= 400:
            raise DejavooApiError(
                f"HTTP {resp.status_code}: {resp.reason_phrase}",
                str(resp.status_code),
                RESULT_API_ERROR,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise DejavooApiError("Invalid response from payment gateway", STATUS_INVALID_REQUEST, RESULT_API_ERROR) from e
        if not isinstance(data, dict):
            raise DejavooApiError("Invalid response from payment gateway", STATUS_INVALID_REQUEST, RESULT_API_ERROR)

        general = data.get("GeneralResponse")
        if not isinstance(general, dict):
            raise DejavooApiError("Missing GeneralResponse", STATUS_INVALID_REQUEST, RESULT_API_ERROR, data)

        result_code = str(general.get("ResultCode", ""))
        status_code = str(general.get("StatusCode", ""))
        if result_code != RESULT_OK or status_code != STATUS_APPROVED:
            message = (
                general.get("DetailedMessage")
                or general.get("Message")
                or get_status_message(status_code)
            )
            raise DejavooApiError(message, status_code, result_code, data)

        return data


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def generate_reference_id(prefix: str = "TXN") -> str:
    """PREFIX-<epoch ms>-<4 digits>, at most 50 characters."""
    timestamp = int(time.time() * 1000)
    suffix = f"{random.randint(0, 9999):04d}"
    return f"{prefix}-{timestamp}-{suffix}"[:MAX_REFERENCE_ID_LENGTH]


def format_amount(amount) -> float:
    """Two-place JSON number for the gateway."""
    return float(quantize(to_decimal(amount)))


def parse_card_type(card_type: Optional[str]) -> Optional[str]:
    if not card_type:
        return None

    normalized = card_type.lower()
    if "visa" in normalized:
        return "Visa"
    if "mastercard" in normalized or "master" in normalized:
        return "Mastercard"
    if "amex" in normalized or "american" in normalized:
        return "American Express"
    if "discover" in normalized:
        return "Discover"
    if "jcb" in normalized:
        return "JCB"
    return card_type


def get_status_message(status_code: str) -> str:
    return STATUS_MESSAGES.get(status_code, f"Unknown status: {status_code}")
