# backend/pos_client/api.py
"""
HTTP client for the POS session endpoints.

Thin wrapper: one method per endpoint, JSON in and out. Non-2xx answers
raise POSApiError carrying the server's error message.
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


class POSApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None, payload: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class POSApiClient:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)
        self._headers = headers

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, *, params: dict | None = None, json: dict | None = None) -> dict:
        try:
            response = self._client.request(method, path, params=params, json=json, headers=self._headers)
        except httpx.HTTPError as e:
            raise POSApiError(f"POS API request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.is_error:
            message = data.get("error") if isinstance(data, dict) else None
            raise POSApiError(message or f"HTTP {response.status_code}", response.status_code, data)
        return data

    def get_or_create_session(self, register_id: int, location_id: int, opening_cash=0) -> dict:
        return self._request(
            "POST",
            "/api/pos/sessions/get-or-create",
            json={"registerId": register_id, "locationId": location_id, "openingCash": opening_cash},
        )

    def get_session_status(self, session_id: int) -> dict | None:
        data = self._request("GET", "/api/pos/sessions/status", params={"sessionId": session_id})
        return data.get("session")

    def close_session(self, session_id: int, closing_cash=0, closing_notes: str | None = None) -> dict:
        return self._request(
            "POST",
            "/api/pos/sessions/close",
            json={"sessionId": session_id, "closingCash": closing_cash, "closingNotes": closing_notes},
        )

    def list_registers(self, location_id: int) -> list[dict]:
        data = self._request("GET", "/api/pos/registers", params={"locationId": location_id})
        return data.get("registers") or []
