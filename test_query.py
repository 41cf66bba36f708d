"""
Namada REST Gateway - Query Dispatch Tests
Tests for request dispatch, the RPC executor and tx event resolution
"""

import threading
from concurrent.futures import Future
from unittest.mock import patch

import pytest

from errors import ExecutionError, NotFoundError, UpstreamError
from namada_types import Address, Event, EventLevel, EventType, TxEventQuery
from query import (
    HANDLERS,
    BalanceResult,
    DelegatorDelegationAtResult,
    EpochResult,
    MetaDataResult,
    QueryBalance,
    QueryDelegatorDelegationAt,
    QueryEpoch,
    QueryMetaData,
    QueryTxEvents,
    QueryValidatorStake,
    RPCExecutor,
    RPCRequest,
    TxEventsResult,
    ValidatorStakeResult,
    dispatch,
    resolve_tx_event,
)

NATIVE_TOKEN = Address("tnam1qxvg64psvhwumv3mwrrjfcz0h3t3274hwggyzcee")
VALIDATOR = Address("tnam1q9mc7t8ewl3vkxhp0fzsn2dyg4j6ar5u9sxl3vuw")
DELEGATOR = Address("tnam1qqxp4nfe8w2kyd0m5gtz7hcu3ajvl6rs9g89grat")
TX_HASH = "A" * 64

APPLIED = Event(EventType.APPLIED, EventLevel.TX, {"code": "0"})
ACCEPTED = Event(EventType.ACCEPTED, EventLevel.TX, {"hash": TX_HASH})


def _tx_events(events):
    """query_tx_events answer backed by a phase -> event mapping"""
    return lambda query, tx_hash: events.get(query)


# ==================== DISPATCH TESTS ====================


class TestDispatch:
    """Test the request to client-call mapping"""

    def test_every_request_kind_has_a_handler(self):
        kinds = set(RPCRequest.__subclasses__())
        assert len(kinds) == 21
        assert kinds == set(HANDLERS)

    def test_balance_passes_token_and_owner(self, make_client):
        client = make_client(get_token_balance=1000000)
        result = dispatch(client, QueryBalance(NATIVE_TOKEN, DELEGATOR))

        assert result == BalanceResult(1000000)
        assert client.calls == [("get_token_balance", (NATIVE_TOKEN, DELEGATOR))]

    def test_delegation_at_epoch(self, make_client):
        client = make_client(get_delegators_delegation_at={VALIDATOR: 50})
        result = dispatch(client, QueryDelegatorDelegationAt(DELEGATOR, 7))

        assert result == DelegatorDelegationAtResult({VALIDATOR: 50})
        assert client.calls == [("get_delegators_delegation_at", (DELEGATOR, 7))]

    def test_metadata_splits_pair(self, make_client):
        client = make_client(query_metadata=(None, None))
        result = dispatch(client, QueryMetaData(VALIDATOR, 3))

        assert result == MetaDataResult(None, None)

    def test_validator_stake_has_its_own_result(self, make_client):
        client = make_client(get_validator_stake=999)
        result = dispatch(client, QueryValidatorStake(4, VALIDATOR))

        assert isinstance(result, ValidatorStakeResult)
        assert client.calls == [("get_validator_stake", (4, VALIDATOR))]

    def test_tx_events_goes_through_resolver(self, make_client):
        client = make_client(query_tx_events=_tx_events({TxEventQuery.APPLIED: APPLIED}))
        assert dispatch(client, QueryTxEvents(TX_HASH)) == TxEventsResult(APPLIED)


# ==================== TX EVENT RESOLUTION TESTS ====================


class TestTxEventResolver:
    """Test the Applied then Accepted lookup"""

    def test_applied_wins(self, make_client):
        client = make_client(query_tx_events=_tx_events({
            TxEventQuery.APPLIED: APPLIED,
            TxEventQuery.ACCEPTED: ACCEPTED,
        }))

        assert resolve_tx_event(client, TX_HASH) is APPLIED
        assert client.calls == [("query_tx_events", (TxEventQuery.APPLIED, TX_HASH))]

    def test_falls_back_to_accepted(self, make_client):
        client = make_client(query_tx_events=_tx_events({TxEventQuery.ACCEPTED: ACCEPTED}))

        assert resolve_tx_event(client, TX_HASH) is ACCEPTED
        assert [args[0] for _, args in client.calls] == [
            TxEventQuery.APPLIED,
            TxEventQuery.ACCEPTED,
        ]

    def test_neither_is_not_found(self, make_client):
        client = make_client(query_tx_events=_tx_events({}))

        with pytest.raises(NotFoundError) as exc_info:
            resolve_tx_event(client, TX_HASH)
        assert str(exc_info.value) == "Unable to find tx events for your transaction."

    def test_applied_error_stops_lookup(self, make_client):
        client = make_client(query_tx_events=UpstreamError("connection refused"))

        with pytest.raises(UpstreamError) as exc_info:
            resolve_tx_event(client, TX_HASH)
        assert "applied" in str(exc_info.value)
        assert len(client.calls) == 1

    def test_accepted_error(self, make_client):
        def answer(query, tx_hash):
            if query == TxEventQuery.APPLIED:
                return None
            raise UpstreamError("timeout")

        client = make_client(query_tx_events=answer)

        with pytest.raises(UpstreamError) as exc_info:
            resolve_tx_event(client, TX_HASH)
        assert "accepted" in str(exc_info.value)
        assert "timeout" in str(exc_info.value)


# ==================== EXECUTOR TESTS ====================


class TestRPCExecutor:
    """Test the worker-thread execution bridge"""

    @pytest.fixture
    def executor_for(self, make_client):
        executors = []

        def build(**responses):
            executor = RPCExecutor(make_client(**responses), max_workers=2)
            executors.append(executor)
            return executor

        yield build
        for executor in executors:
            executor.shutdown(wait=True)

    def test_returns_result(self, executor_for):
        executor = executor_for(query_epoch=42)
        assert executor.execute(QueryEpoch()) == EpochResult(42)

    def test_runs_on_worker_thread(self, executor_for):
        seen = {}

        def query_epoch():
            seen["thread"] = threading.current_thread().name
            return 1

        executor = executor_for(query_epoch=query_epoch)
        executor.execute(QueryEpoch())

        assert seen["thread"].startswith("namada-rpc")
        assert seen["thread"] != threading.current_thread().name

    def test_upstream_error_passes_through(self, executor_for):
        error = UpstreamError("node unavailable")
        executor = executor_for(query_epoch=error)

        with pytest.raises(UpstreamError) as exc_info:
            executor.execute(QueryEpoch())
        assert exc_info.value is error

    def test_worker_crash_is_execution_error(self, executor_for):
        executor = executor_for(query_epoch=RuntimeError("boom"))

        with pytest.raises(ExecutionError) as exc_info:
            executor.execute(QueryEpoch())
        assert "boom" in str(exc_info.value)

    def test_cancelled_query_is_execution_error(self, executor_for):
        executor = executor_for(query_epoch=1)
        future = Future()
        future.cancel()

        with patch.object(executor._pool, "submit", return_value=future):
            with pytest.raises(ExecutionError) as exc_info:
                executor.execute(QueryEpoch())
        assert "cancelled" in str(exc_info.value)

    def test_shut_down_executor_rejects_queries(self, executor_for):
        executor = executor_for(query_epoch=1)
        executor.shutdown(wait=True)

        with pytest.raises(ExecutionError):
            executor.execute(QueryEpoch())

    def test_concurrent_requests_share_client(self, executor_for):
        executor = executor_for(query_epoch=42)
        results = []

        def worker():
            results.append(executor.execute(QueryEpoch()))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == [EpochResult(42)] * 8
        assert len(executor.client.calls) == 8
