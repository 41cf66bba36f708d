"""
Namada REST Gateway - RPC Client Tests
"""

from typing import Any, Dict
from unittest.mock import patch

import pytest
import requests

from errors import UpstreamError
from namada_rpc_client import NamadaRPCClient
from namada_types import Address, KeyScheme, TxEventQuery, ValidatorState
from query import QueryDelegatorDelegationAt, RPCExecutor

VALIDATOR = "tnam1q9mc7t8ewl3vkxhp0fzsn2dyg4j6ar5u9sxl3vuw"
DELEGATOR = "tnam1qqxp4nfe8w2kyd0m5gtz7hcu3ajvl6rs9g89grat"


class _MockResponse:
    """Simple mock for HTTP responses"""

    def __init__(self, payload: Dict[str, Any], status_code: int = 200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


def _result(value: Any) -> _MockResponse:
    return _MockResponse({"jsonrpc": "2.0", "id": 1, "result": value})


@pytest.fixture
def client():
    return NamadaRPCClient("http://localhost:26657/", timeout=5)


class TestTransport:
    """Test JSON-RPC framing and failure handling"""

    def test_request_payload(self, client):
        with patch.object(client.session, "post", return_value=_result(42)) as mock_post:
            assert client.query_epoch() == 42

        args, kwargs = mock_post.call_args
        assert args[0] == "http://localhost:26657"
        assert kwargs["json"]["jsonrpc"] == "2.0"
        assert kwargs["json"]["method"] == "query_epoch"
        assert kwargs["json"]["params"] == {}
        assert kwargs["timeout"] == 5

    def test_request_ids_increase(self, client):
        with patch.object(client.session, "post", return_value=_result(1)) as mock_post:
            client.query_epoch()
            client.query_epoch()

        ids = [c.kwargs["json"]["id"] for c in mock_post.call_args_list]
        assert ids[1] > ids[0]

    def test_rpc_error_message(self, client):
        response = _MockResponse({"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "unknown validator"}})
        with patch.object(client.session, "post", return_value=response):
            with pytest.raises(UpstreamError) as exc_info:
                client.is_validator(Address(VALIDATOR))
        assert str(exc_info.value) == "unknown validator"

    def test_connection_error(self, client):
        with patch.object(client.session, "post", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(UpstreamError) as exc_info:
                client.query_epoch()
        assert "query_epoch" in str(exc_info.value)

    def test_http_error(self, client):
        with patch.object(client.session, "post", return_value=_MockResponse({}, status_code=503)):
            with pytest.raises(UpstreamError):
                client.query_native_token()

    def test_missing_result(self, client):
        with patch.object(client.session, "post", return_value=_MockResponse({"jsonrpc": "2.0", "id": 1})):
            with pytest.raises(UpstreamError):
                client.query_epoch()

    def test_malformed_result_is_upstream_error(self, client):
        with patch.object(client.session, "post", return_value=_result("lots")):
            with pytest.raises(UpstreamError):
                client.get_token_balance(Address(VALIDATOR), Address(DELEGATOR))

    @pytest.mark.parametrize(
        "method,args,payload",
        [
            ("get_delegators_delegation_at", (Address(DELEGATOR), 5), [VALIDATOR]),
            ("query_metadata", (Address(VALIDATOR), 1), ["metadata"]),
            ("query_tx_events", (TxEventQuery.APPLIED, "ABC"),
             {"event_type": "Applied", "level": "Tx", "attributes": ["a"]}),
        ],
    )
    def test_wrong_shape_is_upstream_error(self, client, method, args, payload):
        with patch.object(client.session, "post", return_value=_result(payload)):
            with pytest.raises(UpstreamError) as exc_info:
                getattr(client, method)(*args)
        assert method in str(exc_info.value)

    def test_wrong_shape_through_executor_is_upstream_error(self, client):
        executor = RPCExecutor(client, max_workers=1)
        try:
            with patch.object(client.session, "post", return_value=_result([VALIDATOR])):
                with pytest.raises(UpstreamError):
                    executor.execute(QueryDelegatorDelegationAt(Address(DELEGATOR), 5))
        finally:
            executor.shutdown(wait=True)

    def test_bad_address_from_node_is_upstream_error(self, client):
        with patch.object(client.session, "post", return_value=_result(["not-an-address"])):
            with pytest.raises(UpstreamError):
                client.get_delegators_delegation(Address(DELEGATOR))


class TestQueries:
    """Test result parsing per query"""

    def test_balance(self, client):
        with patch.object(client.session, "post", return_value=_result("1000000")) as mock_post:
            assert client.get_token_balance(Address(VALIDATOR), Address(DELEGATOR)) == 1000000

        assert mock_post.call_args.kwargs["json"]["params"] == {"token": VALIDATOR, "owner": DELEGATOR}

    def test_epoch_at_unknown_height(self, client):
        with patch.object(client.session, "post", return_value=_result(None)):
            assert client.query_epoch_at_height(10) is None

    def test_validator_state(self, client):
        with patch.object(client.session, "post", return_value=_result("Jailed")) as mock_post:
            assert client.get_validator_state(Address(VALIDATOR), 3) == ValidatorState.JAILED

        assert mock_post.call_args.kwargs["json"]["params"] == {"validator": VALIDATOR, "epoch": 3}

    def test_delegations_at(self, client):
        with patch.object(client.session, "post", return_value=_result({VALIDATOR: "25"})):
            result = client.get_delegators_delegation_at(Address(DELEGATOR), 5)
        assert result == {Address(VALIDATOR): 25}

    def test_metadata_without_commission(self, client):
        payload = {"metadata": {"email": "ops@example.org"}, "commission": None}
        with patch.object(client.session, "post", return_value=_result(payload)):
            metadata, commission = client.query_metadata(Address(VALIDATOR), 1)

        assert metadata.email == "ops@example.org"
        assert commission is None

    def test_consensus_key(self, client):
        with patch.object(client.session, "post", return_value=_result({"Secp256k1": "tpknam1qexample"})):
            key = client.query_validator_consensus_keys(Address(VALIDATOR))
        assert key.scheme == KeyScheme.SECP256K1

    def test_tx_events_sends_phase(self, client):
        event = {"event_type": "Accepted", "level": "Tx", "attributes": {}}
        with patch.object(client.session, "post", return_value=_result(event)) as mock_post:
            result = client.query_tx_events(TxEventQuery.ACCEPTED, "ABC")

        assert result.attributes == {}
        assert mock_post.call_args.kwargs["json"]["params"] == {"event_type": "accepted", "tx_hash": "ABC"}

    def test_role_checks_require_booleans(self, client):
        with patch.object(client.session, "post", return_value=_result("yes")):
            with pytest.raises(UpstreamError):
                client.is_steward(Address(VALIDATOR))

    def test_latest_block(self, client):
        block = {"height": "100", "hash": "ABCDEF", "time": "2024-03-01T10:00:00Z"}
        with patch.object(client.session, "post", return_value=_result(block)):
            result = client.query_block()
        assert result.height == 100


class TestHealth:
    """Test node health check"""

    def test_healthy(self, client):
        with patch.object(client.session, "get", return_value=_MockResponse({}, 200)) as mock_get:
            assert client.health() is True
        assert mock_get.call_args.args[0] == "http://localhost:26657/health"

    def test_unreachable(self, client):
        with patch.object(client.session, "get", side_effect=requests.ConnectionError("down")):
            assert client.health() is False
