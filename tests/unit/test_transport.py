"""Unit tests for AlpacaTransport and ClientIdentity."""

import threading
from unittest.mock import MagicMock
from urllib.parse import parse_qs

import httpx
import pytest

from scopesync.devices.catalog import Direction
from scopesync.devices.descriptor import DeviceDescriptor
from scopesync.protocol.errors import NOT_IMPLEMENTED, ProtocolError, TransportError
from scopesync.protocol.transport import AlpacaTransport, ClientIdentity
from scopesync.settings import ScopeSyncSettings

CAMERA = DeviceDescriptor("http://scope.local:11111", "camera", 0)


def _envelope(value=None, error_number=0, error_message="", transaction_id=0):
    return {
        "Value": value,
        "ErrorNumber": error_number,
        "ErrorMessage": error_message,
        "ClientTransactionID": transaction_id,
        "ServerTransactionID": 1,
    }


def _make_transport(handler, identity=None, retries=2):
    """Build a transport whose HTTP client is served by *handler*."""
    client = httpx.Client(transport=httpx.MockTransport(handler))
    sleep = MagicMock()
    transport = AlpacaTransport(
        identity or ClientIdentity(client_id=42),
        retries=retries,
        retry_delay_s=0.25,
        client=client,
        sleep=sleep,
    )
    return transport, sleep


def _form(request):
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


# ---------------------------------------------------------------------------
# ClientIdentity
# ---------------------------------------------------------------------------


class TestClientIdentity:
    def test_random_id_in_range(self):
        for _ in range(20):
            assert 1 <= ClientIdentity().client_id <= 65535

    def test_explicit_id(self):
        assert ClientIdentity(client_id=7).client_id == 7

    def test_rejects_non_positive_id(self):
        with pytest.raises(ValueError):
            ClientIdentity(client_id=0)

    def test_transaction_ids_increase_by_one(self):
        identity = ClientIdentity(client_id=1)
        assert identity.last_transaction_id == 0
        assert [identity.next_transaction_id() for _ in range(3)] == [1, 2, 3]
        assert identity.last_transaction_id == 3

    def test_transaction_ids_unique_across_threads(self):
        identity = ClientIdentity(client_id=1)
        seen = []
        lock = threading.Lock()

        def worker():
            ids = [identity.next_transaction_id() for _ in range(200)]
            with lock:
                seen.extend(ids)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(seen) == list(range(1, 1601))


# ---------------------------------------------------------------------------
# Requests on the wire
# ---------------------------------------------------------------------------


class TestRequests:
    def test_get_builds_url_and_query(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=_envelope(-12.5))

        transport, _ = _make_transport(handler)
        assert transport.get(CAMERA, "CCDTemperature") == -12.5
        assert seen["method"] == "GET"
        assert seen["path"] == "/api/v1/camera/0/ccdtemperature"
        assert seen["params"] == {"ClientID": "42", "ClientTransactionID": "1"}

    def test_put_sends_form_body(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["form"] = _form(request)
            return httpx.Response(200, json=_envelope())

        transport, _ = _make_transport(handler)
        transport.put(CAMERA, "cooleron", CoolerOn=True)
        assert seen["method"] == "PUT"
        assert seen["form"] == {"CoolerOn": "true", "ClientID": "42", "ClientTransactionID": "1"}

    def test_put_numbers_as_text(self):
        seen = {}

        def handler(request):
            seen["form"] = _form(request)
            return httpx.Response(200, json=_envelope())

        transport, _ = _make_transport(handler)
        transport.put(CAMERA, "gain", Gain=1)
        assert seen["form"]["Gain"] == "1"

    def test_address_with_api_prefix_is_truncated(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            return httpx.Response(200, json=_envelope(True))

        device = DeviceDescriptor("http://scope.local:11111/api/v1/", "safetymonitor", 2)
        transport, _ = _make_transport(handler)
        transport.get(device, "issafe")
        assert seen["path"] == "/api/v1/safetymonitor/2/issafe"

    def test_shared_identity_across_transports(self):
        ids = []

        def handler(request):
            ids.append(int(request.url.params["ClientTransactionID"]))
            return httpx.Response(200, json=_envelope(0))

        identity = ClientIdentity(client_id=5)
        first, _ = _make_transport(handler, identity)
        second, _ = _make_transport(handler, identity)
        first.get(CAMERA, "camerastate")
        second.get(CAMERA, "camerastate")
        first.get(CAMERA, "camerastate")
        assert ids == [1, 2, 3]

    def test_read_write_direction_rejected(self):
        transport, _ = _make_transport(lambda request: httpx.Response(200, json=_envelope()))
        with pytest.raises(ValueError):
            transport.call(CAMERA, "gain", Direction.READ_WRITE)


# ---------------------------------------------------------------------------
# Envelope decoding
# ---------------------------------------------------------------------------


class TestEnvelope:
    def test_error_number_with_200_is_protocol_error(self):
        def handler(request):
            return httpx.Response(200, json=_envelope(error_number=NOT_IMPLEMENTED, error_message="nope"))

        transport, _ = _make_transport(handler)
        with pytest.raises(ProtocolError) as exc_info:
            transport.get(CAMERA, "gains")
        assert exc_info.value.code == NOT_IMPLEMENTED
        assert exc_info.value.device_message == "nope"
        assert exc_info.value.not_implemented
        assert exc_info.value.kind == "protocol"

    def test_error_number_wins_over_http_status(self):
        def handler(request):
            return httpx.Response(400, json=_envelope(error_number=0x401, error_message="bad value"))

        transport, _ = _make_transport(handler)
        with pytest.raises(ProtocolError) as exc_info:
            transport.put(CAMERA, "gain", Gain=999)
        assert exc_info.value.code == 0x401

    def test_http_error_without_envelope(self):
        transport, sleep = _make_transport(lambda request: httpx.Response(400, text="Bad Request"))
        with pytest.raises(TransportError) as exc_info:
            transport.get(CAMERA, "gain")
        assert exc_info.value.kind == "transport.http_status"
        assert exc_info.value.status_code == 400
        sleep.assert_not_called()

    def test_non_json_body_is_malformed(self):
        transport, _ = _make_transport(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(TransportError) as exc_info:
            transport.get(CAMERA, "gain")
        assert exc_info.value.kind == "transport.malformed"

    def test_invalid_error_number_is_malformed(self):
        transport, _ = _make_transport(lambda request: httpx.Response(200, json={"ErrorNumber": "x"}))
        with pytest.raises(TransportError) as exc_info:
            transport.get(CAMERA, "gain")
        assert exc_info.value.kind == "transport.malformed"

    def test_missing_value_returns_none(self):
        transport, _ = _make_transport(lambda request: httpx.Response(200, json={"ErrorNumber": 0}))
        assert transport.put(CAMERA, "abortexposure") is None


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------


class TestRetries:
    def test_server_error_retried_then_raised(self):
        calls = []

        def handler(request):
            calls.append(request.url.params["ClientTransactionID"])
            return httpx.Response(503, text="busy")

        transport, sleep = _make_transport(handler, retries=2)
        with pytest.raises(TransportError) as exc_info:
            transport.get(CAMERA, "camerastate")
        assert exc_info.value.retryable
        assert calls == ["1", "2", "3"]
        assert sleep.call_count == 2
        sleep.assert_called_with(0.25)

    def test_connection_error_retried_until_success(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=_envelope(3))

        transport, sleep = _make_transport(handler)
        assert transport.get(CAMERA, "camerastate") == 3
        assert len(attempts) == 2
        assert sleep.call_count == 1

    def test_timeout_maps_to_timeout_kind(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        transport, _ = _make_transport(handler, retries=0)
        with pytest.raises(TransportError) as exc_info:
            transport.get(CAMERA, "camerastate")
        assert exc_info.value.kind == "transport.timeout"

    def test_protocol_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=_envelope(error_number=0x40B, error_message="busy"))

        transport, sleep = _make_transport(handler)
        with pytest.raises(ProtocolError):
            transport.put(CAMERA, "startexposure", Duration=1, Light=True)
        assert len(calls) == 1
        sleep.assert_not_called()


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_from_settings(self):
        settings = ScopeSyncSettings(request_timeout_s=3.0, request_retries=1, retry_delay_s=0.1)
        transport = AlpacaTransport.from_settings(settings, ClientIdentity(client_id=9))
        try:
            assert transport.timeout_s == 3.0
            assert transport.retries == 1
            assert transport.retry_delay_s == 0.1
            assert transport.identity.client_id == 9
        finally:
            transport.close()

    def test_close_owned_client(self):
        with AlpacaTransport(ClientIdentity(client_id=1)) as transport:
            client = transport.client
        assert client.is_closed

    def test_supplied_client_left_open(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        transport = AlpacaTransport(ClientIdentity(client_id=1), client=client)
        transport.close()
        assert not client.is_closed
        client.close()
