"""
Namada RPC Client
Blocking query client for a Namada node. One method per supported query,
each a JSON-RPC 2.0 call whose result is parsed into namada_types records.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Dict, List, Optional, Set, Tuple

import requests
from requests.adapters import HTTPAdapter

from errors import UpstreamError
from namada_types import (
    Address,
    Amount,
    BlockHeight,
    CommissionPair,
    Epoch,
    Event,
    GovernanceParameters,
    LastBlock,
    MaspTokenRewardData,
    PosParams,
    ProposalResult,
    PublicKey,
    TxEventQuery,
    ValidatorMetaData,
    ValidatorState,
    Vote,
    parse_address,
    parse_amount,
)

logger = logging.getLogger(__name__)


# ==================== CLIENT INTERFACE ====================


class ChainQueryClient:
    """
    Interface of the upstream chain client used by the gateway.
    Every method blocks until the node answers and raises UpstreamError on failure.
    """

    def health(self) -> bool:
        raise NotImplementedError

    def query_epoch(self) -> Epoch:
        raise NotImplementedError

    def query_epoch_at_height(self, height: BlockHeight) -> Optional[Epoch]:
        raise NotImplementedError

    def query_proposal_result(self, proposal_id: int) -> Optional[ProposalResult]:
        raise NotImplementedError

    def query_proposal_votes(self, proposal_id: int) -> List[Vote]:
        raise NotImplementedError

    def get_token_balance(self, token: Address, owner: Address) -> Amount:
        raise NotImplementedError

    def get_validator_state(
        self, validator: Address, epoch: Optional[Epoch]
    ) -> Optional[ValidatorState]:
        raise NotImplementedError

    def get_delegators_delegation(self, owner: Address) -> Set[Address]:
        raise NotImplementedError

    def get_delegators_delegation_at(self, owner: Address, epoch: Epoch) -> Dict[Address, Amount]:
        raise NotImplementedError

    def query_metadata(
        self, validator: Address, epoch: Optional[Epoch]
    ) -> Tuple[Optional[ValidatorMetaData], Optional[CommissionPair]]:
        raise NotImplementedError

    def query_governance_parameters(self) -> GovernanceParameters:
        raise NotImplementedError

    def get_pos_params(self) -> PosParams:
        raise NotImplementedError

    def is_steward(self, address: Address) -> bool:
        raise NotImplementedError

    def query_validator_consensus_keys(self, validator: Address) -> Optional[PublicKey]:
        raise NotImplementedError

    def query_tx_events(self, query: TxEventQuery, tx_hash: str) -> Optional[Event]:
        raise NotImplementedError

    def query_native_token(self) -> Address:
        raise NotImplementedError

    def query_block(self) -> Optional[LastBlock]:
        raise NotImplementedError

    def is_validator(self, address: Address) -> bool:
        raise NotImplementedError

    def is_delegator(self, address: Address) -> bool:
        raise NotImplementedError

    def query_masp_reward_tokens(self) -> List[MaspTokenRewardData]:
        raise NotImplementedError

    def get_total_staked_tokens(self, epoch: Epoch) -> Amount:
        raise NotImplementedError

    def get_validator_stake(self, epoch: Epoch, validator: Address) -> Amount:
        raise NotImplementedError


# ==================== JSON-RPC CLIENT ====================


class NamadaRPCClient(ChainQueryClient):
    """
    JSON-RPC query client for a Namada node.
    Safe to share between threads: it holds no per-request state.
    """

    def __init__(self, rpc_url: str, timeout: int = 10, pool_size: int = 16):
        """
        Initialize Namada RPC client

        Args:
            rpc_url: Node query endpoint (e.g., http://localhost:26657)
            timeout: Request timeout in seconds
            pool_size: Maximum pooled HTTP connections
        """
        self.rpc_url = rpc_url.rstrip("/")
        self.timeout = timeout
        self._ids = itertools.count(1)
        self._ids_lock = threading.Lock()

        # Queries are not retried
        self.session = requests.Session()
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size, max_retries=0)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _next_id(self) -> int:
        with self._ids_lock:
            return next(self._ids)

    def _call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make a JSON-RPC call and return its result"""
        payload = {
            "jsonrpc": "2.0",
            "id": self._next_id(),
            "method": method,
            "params": params or {},
        }
        try:
            response = self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"RPC request failed: {method} - {e}")
            raise UpstreamError(f"RPC request {method} failed: {e}") from e
        except ValueError as e:
            logger.error(f"RPC response is not JSON: {method} - {e}")
            raise UpstreamError(f"RPC response for {method} is not valid JSON") from e

        if not isinstance(body, dict):
            raise UpstreamError(f"Malformed RPC response for {method}")

        error = body.get("error")
        if error:
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            logger.error(f"RPC error: {method} - {message}")
            raise UpstreamError(message)

        if "result" not in body:
            raise UpstreamError(f"Malformed RPC response for {method}")
        return body["result"]

    def _query(self, method: str, parse, params: Optional[Dict[str, Any]] = None) -> Any:
        """Call a method and parse its result, treating bad payloads as upstream errors"""
        result = self._call(method, params)
        try:
            return parse(result)
        except (KeyError, TypeError, ValueError, AttributeError, ArithmeticError) as e:
            logger.error(f"Malformed result for {method}: {e}")
            raise UpstreamError(f"Malformed result for {method}: {e}") from e

    def health(self) -> bool:
        """Check node health endpoint"""
        try:
            response = self.session.get(f"{self.rpc_url}/health", timeout=self.timeout)
            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.warning(f"Node health check failed: {e}")
            return False

    # ==================== CHAIN STATE ====================

    def query_epoch(self) -> Epoch:
        return self._query("query_epoch", int)

    def query_epoch_at_height(self, height: BlockHeight) -> Optional[Epoch]:
        return self._query(
            "query_epoch_at_height", _optional(int), {"height": height}
        )

    def query_native_token(self) -> Address:
        return self._query("query_native_token", parse_address)

    def query_block(self) -> Optional[LastBlock]:
        return self._query("query_block", _optional(LastBlock.from_json))

    def query_tx_events(self, query: TxEventQuery, tx_hash: str) -> Optional[Event]:
        """Look up the Applied or Accepted event of a transaction"""
        return self._query(
            "query_tx_events",
            _optional(Event.from_json),
            {"event_type": query.value, "tx_hash": tx_hash},
        )

    # ==================== TOKENS ====================

    def get_token_balance(self, token: Address, owner: Address) -> Amount:
        return self._query(
            "get_token_balance", parse_amount, {"token": str(token), "owner": str(owner)}
        )

    def query_masp_reward_tokens(self) -> List[MaspTokenRewardData]:
        return self._query(
            "query_masp_reward_tokens",
            lambda result: [MaspTokenRewardData.from_json(r) for r in result],
        )

    # ==================== GOVERNANCE ====================

    def query_proposal_result(self, proposal_id: int) -> Optional[ProposalResult]:
        return self._query(
            "query_proposal_result",
            _optional(ProposalResult.from_json),
            {"proposal_id": proposal_id},
        )

    def query_proposal_votes(self, proposal_id: int) -> List[Vote]:
        return self._query(
            "query_proposal_votes",
            lambda result: [Vote.from_json(v) for v in result],
            {"proposal_id": proposal_id},
        )

    def query_governance_parameters(self) -> GovernanceParameters:
        return self._query("query_governance_parameters", GovernanceParameters.from_json)

    def is_steward(self, address: Address) -> bool:
        return self._query("is_steward", _bool, {"address": str(address)})

    # ==================== PROOF OF STAKE ====================

    def get_pos_params(self) -> PosParams:
        return self._query("get_pos_params", PosParams.from_json)

    def get_validator_state(
        self, validator: Address, epoch: Optional[Epoch]
    ) -> Optional[ValidatorState]:
        return self._query(
            "get_validator_state",
            _optional(ValidatorState),
            {"validator": str(validator), "epoch": epoch},
        )

    def get_delegators_delegation(self, owner: Address) -> Set[Address]:
        return self._query(
            "get_delegators_delegation",
            lambda result: {parse_address(a) for a in result},
            {"owner": str(owner)},
        )

    def get_delegators_delegation_at(self, owner: Address, epoch: Epoch) -> Dict[Address, Amount]:
        return self._query(
            "get_delegators_delegation_at",
            lambda result: {parse_address(k): parse_amount(v) for k, v in result.items()},
            {"owner": str(owner), "epoch": epoch},
        )

    def query_metadata(
        self, validator: Address, epoch: Optional[Epoch]
    ) -> Tuple[Optional[ValidatorMetaData], Optional[CommissionPair]]:
        def parse(result):
            return (
                _optional(ValidatorMetaData.from_json)(result.get("metadata")),
                _optional(CommissionPair.from_json)(result.get("commission")),
            )

        return self._query(
            "query_metadata", parse, {"validator": str(validator), "epoch": epoch}
        )

    def query_validator_consensus_keys(self, validator: Address) -> Optional[PublicKey]:
        return self._query(
            "query_validator_consensus_keys",
            _optional(PublicKey.from_json),
            {"validator": str(validator)},
        )

    def is_validator(self, address: Address) -> bool:
        return self._query("is_validator", _bool, {"address": str(address)})

    def is_delegator(self, address: Address) -> bool:
        return self._query("is_delegator", _bool, {"address": str(address)})

    def get_total_staked_tokens(self, epoch: Epoch) -> Amount:
        return self._query("get_total_staked_tokens", parse_amount, {"epoch": epoch})

    def get_validator_stake(self, epoch: Epoch, validator: Address) -> Amount:
        return self._query(
            "get_validator_stake",
            parse_amount,
            {"epoch": epoch, "validator": str(validator)},
        )


# ==================== RESULT PARSERS ====================


def _optional(parse):
    def parse_optional(value):
        return None if value is None else parse(value)
    return parse_optional


def _bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"Expected boolean, got {value!r}")
    return value
