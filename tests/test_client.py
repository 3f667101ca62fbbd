"""Tests for kvsync.core.client -- Remote Store Client over HTTP."""

import threading
from unittest.mock import Mock, patch

import pytest
import requests

from kvsync.connectivity import ConnectivityMonitor
from kvsync.core.client import PAYLOAD_VERSION, RemoteStoreClient
from kvsync.errors import AuthError, NetworkError, RemoteError
from kvsync.sync.models import NOT_FOUND, Record


def _response(status_code=200, body=None, content=b"x", reason="OK"):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    response.content = content
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


# -------------------------------------------------------------------------
# Session setup
# -------------------------------------------------------------------------


class TestSession:
    def test_headers(self, mock_config):
        client = RemoteStoreClient(mock_config)
        headers = client.session.headers

        assert headers["Authorization"] == "Bearer test-key"
        assert headers["X-User-ID"] == "user-1"
        assert client.session.verify is True

    def test_empty_user_id_falls_back_to_anonymous(self, mock_config):
        mock_config.user_id = ""
        client = RemoteStoreClient(mock_config)
        assert client.session.headers["X-User-ID"] == "anonymous"

    def test_insecure_disables_verify(self, mock_config):
        mock_config.insecure = True
        assert RemoteStoreClient(mock_config).session.verify is False

    def test_session_is_thread_local(self, mock_config):
        client = RemoteStoreClient(mock_config)
        main_session = client.session
        other = []

        thread = threading.Thread(target=lambda: other.append(client.session))
        thread.start()
        thread.join()

        assert client.session is main_session
        assert other[0] is not main_session

    def test_key_is_url_quoted(self, mock_config):
        client = RemoteStoreClient(mock_config)
        assert client._url("a/b c") == "https://api.example.com/data/a%2Fb%20c"
        assert client._url() == "https://api.example.com/data"


# -------------------------------------------------------------------------
# get / put / list_all
# -------------------------------------------------------------------------


class TestGet:
    def test_returns_record(self, mock_config):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(body={"data": {"a": 1}, "timestamp": 500}),
        ) as mock_request:
            record = client.get("copywriting_ai_k")

        assert record == Record(
            key="copywriting_ai_k", value={"a": 1}, last_modified=500
        )
        args, kwargs = mock_request.call_args
        assert args == ("GET", "https://api.example.com/data/copywriting_ai_k")
        assert kwargs["timeout"] == (10, 30.0)

    def test_404_is_not_found(self, mock_config):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session, "request", return_value=_response(404)
        ):
            assert client.get("missing") is NOT_FOUND

    def test_tombstone(self, mock_config):
        client = RemoteStoreClient(mock_config)
        body = {"data": None, "timestamp": 9, "deleted": True}
        with patch.object(
            requests.Session, "request", return_value=_response(body=body)
        ):
            record = client.get("k")
        assert record.deleted is True

    def test_malformed_record(self, mock_config):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(body={"data": 1}),
        ):
            with pytest.raises(RemoteError, match="Malformed record"):
                client.get("k")

    def test_invalid_json(self, mock_config):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(body=ValueError("bad json")),
        ):
            with pytest.raises(RemoteError, match="Malformed response"):
                client.get("k")


class TestPut:
    def test_body_shape(self, mock_config):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(body={"success": True}),
        ) as mock_request:
            ack = client.put("k", {"x": 1}, 1234)

        assert ack == {"success": True}
        args, kwargs = mock_request.call_args
        assert args[0] == "PUT"
        assert kwargs["json"] == {
            "data": {"x": 1},
            "timestamp": 1234,
            "version": PAYLOAD_VERSION,
        }

    def test_tombstone_flag_sent(self, mock_config):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session, "request", return_value=_response(body={})
        ) as mock_request:
            client.put("k", None, 5, deleted=True)
        assert mock_request.call_args.kwargs["json"]["deleted"] is True

    def test_empty_ack(self, mock_config):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(204, body=None, content=b""),
        ):
            assert client.put("k", 1, 1) == {}

    def test_404_is_remote_error(self, mock_config):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session, "request", return_value=_response(404)
        ):
            with pytest.raises(RemoteError) as exc_info:
                client.put("k", 1, 1)
        assert exc_info.value.status_code == 404


class TestListAll:
    def test_parses_records(self, mock_config):
        client = RemoteStoreClient(mock_config)
        body = {
            "a": {"data": 1, "timestamp": 10},
            "b": {"data": 2, "timestamp": 20},
        }
        with patch.object(
            requests.Session, "request", return_value=_response(body=body)
        ):
            records = client.list_all()

        assert records["a"].value == 1
        assert records["b"].last_modified == 20

    def test_non_object_listing(self, mock_config):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session, "request", return_value=_response(body=[1])
        ):
            with pytest.raises(RemoteError, match="expected a JSON object"):
                client.list_all()

    @pytest.mark.parametrize("timestamp", ["not-a-number", None, [1]])
    def test_bad_timestamp_is_remote_error(self, mock_config, timestamp):
        client = RemoteStoreClient(mock_config)
        body = {"k": {"data": 1, "timestamp": timestamp}}
        with patch.object(
            requests.Session, "request", return_value=_response(body=body)
        ):
            with pytest.raises(
                RemoteError, match="Malformed record for key 'k'"
            ):
                client.list_all()


# -------------------------------------------------------------------------
# Error mapping and connectivity
# -------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_error(self, mock_config, status):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session, "request", return_value=_response(status)
        ):
            with pytest.raises(AuthError):
                client.get("k")

    def test_server_error(self, mock_config):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(503, reason="Service Unavailable"),
        ):
            with pytest.raises(RemoteError) as exc_info:
                client.list_all()
        assert exc_info.value.status_code == 503
        assert exc_info.value.retryable is True

    def test_connection_error_marks_monitor_offline(self, mock_config):
        monitor = ConnectivityMonitor(initial=True)
        client = RemoteStoreClient(mock_config, monitor)
        with patch.object(
            requests.Session,
            "request",
            side_effect=requests.ConnectionError("refused"),
        ):
            with pytest.raises(NetworkError):
                client.get("k")
        assert monitor.online is False

    def test_offline_monitor_short_circuits(self, mock_config):
        monitor = ConnectivityMonitor(initial=False)
        client = RemoteStoreClient(mock_config, monitor)
        with patch.object(requests.Session, "request") as mock_request:
            with pytest.raises(NetworkError, match="offline"):
                client.put("k", 1, 1)
        mock_request.assert_not_called()


class TestValidateConnection:
    def test_any_response_is_reachable(self, mock_config):
        client = RemoteStoreClient(mock_config)
        with patch.object(
            requests.Session, "head", return_value=_response(405)
        ):
            assert client.validate_connection() is True

    def test_transport_failure_is_unreachable(self, mock_config):
        monitor = ConnectivityMonitor(initial=False)
        client = RemoteStoreClient(mock_config, monitor)
        with patch.object(
            requests.Session, "head", side_effect=requests.Timeout()
        ):
            assert client.validate_connection() is False


@pytest.mark.live
def test_live_round_trip(mock_config):
    """Round-trip against a real remote (KVSYNC_API_URL / KVSYNC_API_KEY)."""
    import os

    from kvsync.config import load_config

    config = load_config(data_dir=mock_config.data_dir)
    client = RemoteStoreClient(config)
    key = f"{config.namespace}kvsync_live_test_{os.getpid()}"

    client.put(key, {"probe": True}, 1)
    record = client.get(key)

    assert record.value == {"probe": True}
