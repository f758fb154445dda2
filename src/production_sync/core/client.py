import logging
import threading
from typing import Any

import requests

from ..config import Config
from ..errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    SyncError,
    TransportError,
)

logger = logging.getLogger(__name__)

CHANGE_ACTIONS = ("create", "update", "delete")


class PeerClient:
    """HTTP+JSON client for the other node's sync endpoints.

    Every call is bounded by ``config.peer_timeout_seconds``.  An
    unreachable peer raises ``TransportError``; it never yields an empty
    result.
    """

    def __init__(self, config: Config):
        if not config.peer_url:
            raise ValueError(
                "Peer URL not configured. Set PEER_URL or add 'peer.url' to config.yml."
            )
        self.config = config
        self.base_url = config.peer_url.rstrip("/")
        self.timeout = (
            config.peer_timeout_seconds,
            config.peer_timeout_seconds,
        )
        self._thread_local = threading.local()

    @property
    def session(self) -> requests.Session:
        """Return the current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.verify = not self.config.insecure
        session.headers["Accept"] = "application/json"
        if self.config.peer_api_key:
            session.headers["x-api-key"] = self.config.peer_api_key
        return session

    def _request(
        self, method: str, path: str, payload: Any = None
    ) -> dict[str, Any]:
        """
        Send one request to the peer and return its JSON envelope.

        Raises:
            TransportError: Connection failure or timeout.
            AuthError: 401/403.
            NotFoundError: 404.
            ConflictError: 409; ``existing`` carries the peer's record.
            SyncError: Any other non-2xx status, a malformed body, or
                ``success: false``.
        """
        url = f"{self.base_url}{path}"
        label = f"{method} {path}"
        try:
            response = self._get_session().request(
                method,
                url,
                json=payload,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise TransportError(
                f"Peer request timed out: {label}", cause=exc
            ) from exc
        except requests.ConnectionError as exc:
            raise TransportError(
                f"Peer unreachable: {label}: {exc}", cause=exc
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(
                f"Peer request failed: {label}: {exc}", cause=exc
            ) from exc

        try:
            body = response.json()
        except ValueError:
            body = None
        error = body.get("error") if isinstance(body, dict) else None
        detail = error or response.reason or "no detail"
        status = response.status_code

        if status in (401, 403):
            raise AuthError(f"Peer rejected credentials ({status}): {detail}")
        if status == 404:
            raise NotFoundError(f"Peer reports not found: {label}: {detail}")
        if status == 409:
            existing = (
                body.get("existing") or body.get("data")
                if isinstance(body, dict)
                else None
            )
            raise ConflictError(f"Peer reports conflict: {detail}", existing=existing)
        if not 200 <= status < 300:
            raise SyncError(
                f"Peer returned HTTP {status} for {label}: {detail}",
                retryable=status >= 500,
            )
        if not isinstance(body, dict):
            raise SyncError(f"Malformed response from peer for {label}")
        if body.get("success") is False:
            raise SyncError(f"Peer rejected {label}: {detail}")
        return body

    def export_records(self) -> list[dict[str, Any]]:
        """
        Fetch the peer's full snapshot.
        """
        body = self._request("GET", "/records/export")
        data = body.get("data")
        if not isinstance(data, list):
            raise SyncError("Peer export did not contain a record list")
        if not all(isinstance(item, dict) for item in data):
            raise SyncError("Malformed record in peer export")
        logger.debug("Fetched %d records from peer", len(data))
        return data

    def create_record(self, record: dict[str, Any]) -> dict[str, Any]:
        """
        Create a record on the peer. Returns the peer's stored record.
        """
        return self._record_reply(self._request("POST", "/records", record))

    def update_record(
        self, peer_id: int, record: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Update the peer's record *peer_id*. Returns the peer's stored record.
        """
        return self._record_reply(
            self._request("PUT", f"/records/{peer_id}", record)
        )

    def delete_record(self, peer_id: int) -> None:
        """
        Delete the peer's record *peer_id*.
        """
        self._request("DELETE", f"/records/{peer_id}")

    def apply_change(
        self, action: str, record: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Send one change notification to the peer's apply endpoint.

        Args:
            action: ``create``, ``update`` or ``delete``.
            record: Wire form of the affected record.
        """
        if action not in CHANGE_ACTIONS:
            raise ValueError(
                f"Invalid change action '{action}': must be one of {', '.join(CHANGE_ACTIONS)}"
            )
        return self._request(
            "POST", "/sync/apply", {"action": action, "data": record}
        )

    def check_health(self) -> dict[str, Any]:
        """
        Call the peer's health endpoint.
        """
        return self._request("GET", "/health")

    @staticmethod
    def _record_reply(body: dict[str, Any]) -> dict[str, Any]:
        data = body.get("data")
        if not isinstance(data, dict) or data.get("id") is None:
            raise SyncError("Peer reply did not contain the stored record")
        return data
