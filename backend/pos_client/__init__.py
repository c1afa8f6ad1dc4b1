"""
POS terminal client.

Holds the register session a POS terminal works in, persists it across
restarts and keeps it converged with the server record.
"""

from .api import POSApiClient, POSApiError
from .session_manager import POSSessionManager
from .storage import LocalStateStore

__all__ = ["LocalStateStore", "POSApiClient", "POSApiError", "POSSessionManager"]
