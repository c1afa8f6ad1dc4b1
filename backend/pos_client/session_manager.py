# backend/pos_client/session_manager.py
"""
POS Session Manager

Client side of the register session. The server record is the source of
truth; this object keeps a local copy that survives restarts and converges
back to the server on every poll.

STATE MACHINE (per register):
    no session -> open -> closed
A closed session is dropped locally; "closed" is never stored.

INVARIANT: local session state never outlives the server session. A poll
that finds the session closed (or gone) clears session and register
locally before returning.
"""

from __future__ import annotations

import logging
import threading

from .api import POSApiClient, POSApiError
from .storage import LocalStateStore

logger = logging.getLogger(__name__)


SESSION_KEY = "pos_active_session"
REGISTER_KEY = "pos_register_id"
LOCATION_KEY = "pos_selected_location"

DEFAULT_POLL_INTERVAL = 3.0
END_SESSION_NOTES = "Session ended by user"


def _processor_active(register: dict) -> bool:
    processor = register.get("payment_processor") or {}
    return bool(register.get("payment_processor_id") and processor.get("is_active") is True)


class POSSessionManager:
    def __init__(
        self,
        api: POSApiClient,
        store: LocalStateStore,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.api = api
        self.store = store
        self.poll_interval = poll_interval

        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        self._session: dict | None = None
        self._register_id: int | None = None
        self._location: dict | None = None
        self._has_payment_processor = False

        self._restore()

    # -------------------------------------------------------------------------
    # state
    # -------------------------------------------------------------------------

    def _restore(self) -> None:
        session = self.store.get_json(SESSION_KEY)
        if session is not None and not isinstance(session, dict):
            logger.warning("Discarding stored POS session: not an object")
            self.store.remove_item(SESSION_KEY)
            session = None

        location = self.store.get_json(LOCATION_KEY)
        if location is not None and not isinstance(location, dict):
            self.store.remove_item(LOCATION_KEY)
            location = None

        register_id = self.store.get_item(REGISTER_KEY)
        if register_id is not None:
            try:
                register_id = int(register_id)
            except ValueError:
                self.store.remove_item(REGISTER_KEY)
                register_id = None

        self._session = session
        self._register_id = register_id
        self._location = location
        if session:
            self._has_payment_processor = bool(session.get("has_payment_processor"))
            logger.info("Restored POS session %s", session.get("id"))

    def _persist_session(self) -> None:
        self.store.set_json(SESSION_KEY, self._session)

    def _clear_session(self) -> None:
        self._session = None
        self._register_id = None
        self._has_payment_processor = False
        self.store.remove_items(SESSION_KEY, REGISTER_KEY)

    @property
    def session(self) -> dict | None:
        with self._lock:
            return dict(self._session) if self._session else None

    @property
    def register_id(self) -> int | None:
        return self._register_id

    @property
    def location(self) -> dict | None:
        with self._lock:
            return dict(self._location) if self._location else None

    @property
    def has_payment_processor(self) -> bool:
        return self._has_payment_processor

    # -------------------------------------------------------------------------
    # operations
    # -------------------------------------------------------------------------

    def start_session(
        self,
        register_id: int,
        location_id: int,
        location_name: str,
        register_name: str,
        opening_cash=0,
        has_processor: bool | None = None,
        processor_id: int | None = None,
    ) -> dict:
        """
        Open (or join) the register's session on the server and adopt it.

        The server may not echo display names, so register and location
        names come from the caller. has_processor/processor_id carry the
        processor binding the caller already resolved; when omitted the
        server's answer is used.

        Raises:
            POSApiError: server refused or unreachable; local state unchanged
        """
        data = self.api.get_or_create_session(register_id, location_id, opening_cash)
        server_session = data.get("session") or {}

        if has_processor is None:
            has_processor = bool(server_session.get("has_processor"))
        if processor_id is None:
            processor_id = server_session.get("payment_processor_id")

        session = {
            **server_session,
            "register_id": register_id,
            "register_name": register_name,
            "location_id": location_id,
            "location_name": location_name,
            "total_sales": server_session.get("total_sales") or 0,
            "total_transactions": server_session.get("total_transactions") or 0,
            "opening_cash": server_session.get("opening_cash") or 0,
            "payment_processor_id": processor_id,
            "has_payment_processor": bool(has_processor),
        }

        with self._lock:
            self._session = session
            self._register_id = register_id
            self._location = {"id": location_id, "name": location_name}
            self._has_payment_processor = bool(has_processor)

            self._persist_session()
            self.store.set_item(REGISTER_KEY, str(register_id))
            self.store.set_json(LOCATION_KEY, self._location)

        logger.info(
            "POS session %s %s on register %s (processor: %s)",
            session.get("id"),
            "opened" if data.get("created") else "joined",
            register_id,
            has_processor,
        )
        return dict(session)

    def end_session(self) -> bool:
        """
        Close the current session on the server and drop it locally.

        No-op (returns False) without a local session. A session the server
        already considers closed is dropped locally without error.
        """
        with self._lock:
            if not self._session:
                return False
            session_id = self._session["id"]

        try:
            self.api.close_session(session_id, closing_cash=0, closing_notes=END_SESSION_NOTES)
        except POSApiError as e:
            if e.status_code not in (404, 409):
                logger.error("Failed to end POS session %s: %s", session_id, e)
                raise
            logger.info("POS session %s was already closed on the server", session_id)

        with self._lock:
            if self._session and self._session.get("id") == session_id:
                self._clear_session()
        return True

    def join_session(self, session_id: int) -> dict:
        """
        Adopt an existing open session by id.

        Raises:
            POSApiError: unknown or closed session
        """
        fetched = self.api.get_session_status(session_id)
        if not fetched:
            raise POSApiError("Session not found", 404)
        if fetched.get("status") == "closed":
            raise POSApiError("Session is closed", 409)

        with self._lock:
            self._session = {
                **fetched,
                "has_payment_processor": bool(fetched.get("has_processor")),
            }
            self._register_id = fetched.get("register_id")
            self._has_payment_processor = self._session["has_payment_processor"]
            self._persist_session()
            if self._register_id is not None:
                self.store.set_item(REGISTER_KEY, str(self._register_id))
            return dict(self._session)

    def check_session(self) -> dict | None:
        """
        One reconciliation pass against the server.

        Returns the session still held afterwards. Transport or server
        errors are logged and leave local state as it was; they do not
        raise.
        """
        with self._lock:
            if not self._session:
                return None
            session_id = self._session["id"]

        try:
            updated = self.api.get_session_status(session_id)
        except POSApiError as e:
            logger.error("Session check error for %s: %s", session_id, e)
            return self.session

        with self._lock:
            if not self._session or self._session.get("id") != session_id:
                # ended or replaced while the request was in flight
                return self.session

            if updated is None or updated.get("status") == "closed":
                logger.info("POS session %s closed remotely; clearing local state", session_id)
                self._clear_session()
                return None

            merged = {**self._session, **updated}
            if "has_processor" in updated:
                merged["has_payment_processor"] = bool(updated["has_processor"])
                self._has_payment_processor = merged["has_payment_processor"]
            self._session = merged
            self._persist_session()
            return dict(merged)

    def refresh_processor_status(self) -> bool | None:
        """
        Re-resolve whether the bound register has an ACTIVE processor.

        Call after each transaction so a processor disabled mid-session
        drops the terminal to cash-only. Returns the new status, or None
        when there is nothing to refresh or the lookup failed.
        """
        with self._lock:
            if not self._location or not self._location.get("id") or not self._register_id:
                return None
            location_id = self._location["id"]
            register_id = self._register_id

        try:
            registers = self.api.list_registers(location_id)
        except POSApiError as e:
            logger.error("Failed to refresh processor status: %s", e)
            return None

        register = next((r for r in registers if r.get("id") == register_id), None)
        if register is None:
            return None

        status = _processor_active(register)
        with self._lock:
            self._has_payment_processor = status
            if self._session:
                self._session = {
                    **self._session,
                    "has_payment_processor": status,
                    "payment_processor_id": register.get("payment_processor_id"),
                }
                self._persist_session()

        logger.info("Refreshed processor status for register %s: %s", register_id, status)
        return status

    def set_location(self, location: dict) -> None:
        with self._lock:
            self._location = dict(location)
            self.store.set_json(LOCATION_KEY, self._location)

    def clear_location(self) -> None:
        """Forget location, register and session locally (server untouched)."""
        with self._lock:
            self._location = None
            self._session = None
            self._register_id = None
            self._has_payment_processor = False
            self.store.remove_items(LOCATION_KEY, SESSION_KEY, REGISTER_KEY)

    # -------------------------------------------------------------------------
    # polling
    # -------------------------------------------------------------------------

    def _poll_loop(self) -> None:
        while not self._stop.wait(self.poll_interval):
            try:
                self.check_session()
            except Exception:
                logger.exception("POS session poll failed")

    def start_polling(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._poll_loop, name="pos-session-poll", daemon=True)
            self._thread.start()

    def stop_polling(self, timeout: float | None = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None

    @property
    def is_polling(self) -> bool:
        return bool(self._thread and self._thread.is_alive())
