"""Remote Store Client: user-scoped key-value HTTP API.

Endpoints consumed::

    GET  /data/{key}   -> {"data": ..., "timestamp": ms[, "deleted": true]}
    PUT  /data/{key}   <- {"data": ..., "timestamp": ms, "version": "2.0.0"}
    GET  /data         -> {key: {"data": ..., "timestamp": ms}, ...}

Every request carries ``Authorization: Bearer <api_key>`` and
``X-User-ID: <user_id>``.  A 404 on ``GET /data/{key}`` is the normal
"never existed remotely" answer and is returned as ``NOT_FOUND``.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import requests

from ..config import Config
from ..errors import AuthError, NetworkError, RemoteError
from ..sync.models import NOT_FOUND, NotFound, Record

if TYPE_CHECKING:
    from ..connectivity import ConnectivityMonitor

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = "2.0.0"


class RemoteStoreClient:
    def __init__(
        self,
        config: Config,
        monitor: ConnectivityMonitor | None = None,
    ):
        self.config = config
        self.monitor = monitor
        self._thread_local = threading.local()
        self.base_url = config.api_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.config.api_key}",
                "X-User-ID": self.config.user_id or "anonymous",
            }
        )
        session.verify = not self.config.insecure
        return session

    def _url(self, key: str | None = None) -> str:
        if key is None:
            return f"{self.base_url}/data"
        return f"{self.base_url}/data/{quote(key, safe='')}"

    def _request(
        self, method: str, url: str, **kwargs: Any
    ) -> requests.Response:
        """
        Send one request, mapping transport and HTTP failures onto the
        engine's error taxonomy.  404 responses are returned to the caller.
        """
        if self.monitor is not None and not self.monitor.online:
            raise NetworkError("offline")

        try:
            response = self._get_session().request(
                method,
                url,
                timeout=(10, self.config.request_timeout),
                **kwargs,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            if self.monitor is not None:
                self.monitor.set_online(False)
            raise NetworkError(str(exc)) from exc
        except requests.RequestException as exc:
            raise NetworkError(str(exc)) from exc

        if response.status_code in (401, 403):
            raise AuthError(
                f"HTTP {response.status_code}: credentials rejected for user "
                f"'{self.config.user_id}'"
            )
        if response.status_code == 404:
            return response
        if not 200 <= response.status_code < 300:
            raise RemoteError(
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
            )
        return response

    def get(self, key: str) -> Record | NotFound:
        """
        Fetch one record.  Returns ``NOT_FOUND`` if the key is absent.
        """
        response = self._request("GET", self._url(key))
        if response.status_code == 404:
            return NOT_FOUND
        return _parse_record(key, _json(response))

    def put(
        self,
        key: str,
        value: Any,
        last_modified: int,
        deleted: bool = False,
    ) -> dict:
        """
        Write one record with the writer's timestamp.

        Returns:
            The acknowledgement body (empty dict if the server sent none).

        Raises:
            NetworkError: Offline or transport failure.
            AuthError: Credentials rejected.
            RemoteError: Any other non-2xx status, including 404.
        """
        body: dict[str, Any] = {
            "data": value,
            "timestamp": last_modified,
            "version": PAYLOAD_VERSION,
        }
        if deleted:
            body["deleted"] = True

        response = self._request("PUT", self._url(key), json=body)
        if response.status_code == 404:
            raise RemoteError("HTTP 404: data endpoint not found", 404)
        logger.debug("Pushed %s (ts=%d)", key, last_modified)
        if not response.content:
            return {}
        try:
            ack = response.json()
        except ValueError:
            return {}
        return ack if isinstance(ack, dict) else {}

    def list_all(self) -> dict[str, Record]:
        """
        Fetch every record in the user's scope.
        """
        response = self._request("GET", self._url())
        if response.status_code == 404:
            raise RemoteError("HTTP 404: data endpoint not found", 404)
        payload = _json(response)
        if not isinstance(payload, dict):
            raise RemoteError("Malformed listing: expected a JSON object")
        return {
            key: _parse_record(key, raw) for key, raw in payload.items()
        }

    def validate_connection(self) -> bool:
        """
        Probe the remote store, bypassing the monitor.  Returns True if the
        server answered at all (any HTTP status).
        """
        try:
            self._get_session().head(
                self._url(), timeout=(5, self.config.request_timeout)
            )
        except requests.RequestException as exc:
            logger.debug("Connectivity probe failed: %s", exc)
            return False
        return True


def _json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise RemoteError(
            f"Malformed response body: {exc}", response.status_code
        ) from exc


def _parse_record(key: str, raw: Any) -> Record:
    """Convert a wire ``{data, timestamp}`` object into a Record."""
    if not isinstance(raw, dict) or "timestamp" not in raw:
        raise RemoteError(f"Malformed record for key '{key}'")
    try:
        last_modified = int(raw["timestamp"])
    except (TypeError, ValueError) as exc:
        raise RemoteError(
            f"Malformed record for key '{key}': bad timestamp "
            f"{raw['timestamp']!r}"
        ) from exc
    return Record(
        key=key,
        value=raw.get("data"),
        last_modified=last_modified,
        deleted=bool(raw.get("deleted", False)),
    )
