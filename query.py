"""
Namada REST Gateway - Query Dispatch
Typed query requests, their raw results, and the executor that runs each
blocking RPC call on a worker thread while the request thread waits.
"""

from __future__ import annotations

import logging
from concurrent.futures import CancelledError, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Type

from errors import ExecutionError, GatewayError, NotFoundError, UpstreamError
from namada_rpc_client import ChainQueryClient
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
)

logger = logging.getLogger(__name__)


# ==================== REQUESTS ====================


class RPCRequest:
    """Base class of all query requests"""


@dataclass(frozen=True)
class QueryEpoch(RPCRequest):
    pass


@dataclass(frozen=True)
class QueryEpochAtHeight(RPCRequest):
    height: BlockHeight


@dataclass(frozen=True)
class QueryProposalResult(RPCRequest):
    proposal_id: int


@dataclass(frozen=True)
class QueryProposalVotes(RPCRequest):
    proposal_id: int


@dataclass(frozen=True)
class QueryBalance(RPCRequest):
    token: Address
    owner: Address


@dataclass(frozen=True)
class QueryValidatorState(RPCRequest):
    validator: Address
    epoch: Optional[Epoch] = None


@dataclass(frozen=True)
class QueryDelegatorDelegation(RPCRequest):
    owner: Address


@dataclass(frozen=True)
class QueryDelegatorDelegationAt(RPCRequest):
    owner: Address
    epoch: Epoch


@dataclass(frozen=True)
class QueryMetaData(RPCRequest):
    validator: Address
    epoch: Optional[Epoch] = None


@dataclass(frozen=True)
class QueryGovernanceParameters(RPCRequest):
    pass


@dataclass(frozen=True)
class QueryPosParameters(RPCRequest):
    pass


@dataclass(frozen=True)
class QueryCheckIsSteward(RPCRequest):
    address: Address


@dataclass(frozen=True)
class QueryValidatorConsensusKeys(RPCRequest):
    validator: Address


@dataclass(frozen=True)
class QueryTxEvents(RPCRequest):
    tx_hash: str


@dataclass(frozen=True)
class QueryNativeToken(RPCRequest):
    pass


@dataclass(frozen=True)
class QueryLatestBlock(RPCRequest):
    pass


@dataclass(frozen=True)
class QueryCheckIsValidator(RPCRequest):
    address: Address


@dataclass(frozen=True)
class QueryCheckIsDelegator(RPCRequest):
    address: Address


@dataclass(frozen=True)
class QueryMaspReward(RPCRequest):
    pass


@dataclass(frozen=True)
class QueryTotalStakedTokens(RPCRequest):
    epoch: Epoch


@dataclass(frozen=True)
class QueryValidatorStake(RPCRequest):
    epoch: Epoch
    validator: Address


# ==================== RESULTS ====================


class RPCResult:
    """Base class of raw query results"""


@dataclass(frozen=True)
class EpochResult(RPCResult):
    epoch: Epoch


@dataclass(frozen=True)
class EpochAtHeightResult(RPCResult):
    epoch: Optional[Epoch]


@dataclass(frozen=True)
class ProposalResultResult(RPCResult):
    proposal: Optional[ProposalResult]


@dataclass(frozen=True)
class ProposalVotesResult(RPCResult):
    votes: List[Vote]


@dataclass(frozen=True)
class BalanceResult(RPCResult):
    amount: Amount


@dataclass(frozen=True)
class ValidatorStateResult(RPCResult):
    state: Optional[ValidatorState]


@dataclass(frozen=True)
class DelegatorDelegationResult(RPCResult):
    validators: Set[Address]


@dataclass(frozen=True)
class DelegatorDelegationAtResult(RPCResult):
    delegations: Dict[Address, Amount]


@dataclass(frozen=True)
class MetaDataResult(RPCResult):
    metadata: Optional[ValidatorMetaData]
    commission: Optional[CommissionPair]


@dataclass(frozen=True)
class GovernanceParametersResult(RPCResult):
    parameters: GovernanceParameters


@dataclass(frozen=True)
class PosParametersResult(RPCResult):
    parameters: PosParams


@dataclass(frozen=True)
class IsStewardResult(RPCResult):
    is_steward: bool


@dataclass(frozen=True)
class ValidatorConsensusKeysResult(RPCResult):
    public_key: Optional[PublicKey]


@dataclass(frozen=True)
class TxEventsResult(RPCResult):
    event: Event


@dataclass(frozen=True)
class NativeTokenResult(RPCResult):
    address: Address


@dataclass(frozen=True)
class LatestBlockResult(RPCResult):
    block: Optional[LastBlock]


@dataclass(frozen=True)
class IsValidatorResult(RPCResult):
    is_validator: bool


@dataclass(frozen=True)
class IsDelegatorResult(RPCResult):
    is_delegator: bool


@dataclass(frozen=True)
class MaspRewardResult(RPCResult):
    rewards: List[MaspTokenRewardData]


@dataclass(frozen=True)
class TotalStakedTokensResult(RPCResult):
    amount: Amount


@dataclass(frozen=True)
class ValidatorStakeResult(RPCResult):
    amount: Amount


# ==================== TX EVENT RESOLUTION ====================


def resolve_tx_event(client: ChainQueryClient, tx_hash: str) -> Event:
    """
    Find the event of a transaction.

    Applied events take priority; the Accepted event is only looked up when
    no Applied event exists. Raises NotFoundError when neither exists.
    """
    for phase in (TxEventQuery.APPLIED, TxEventQuery.ACCEPTED):
        try:
            event = client.query_tx_events(phase, tx_hash)
        except UpstreamError as e:
            raise UpstreamError(
                f"Error querying {phase.value} tx events for your transaction: {e}"
            ) from e
        if event is not None:
            return event
        logger.debug(f"No {phase.value} event for tx {tx_hash}")

    raise NotFoundError("Unable to find tx events for your transaction.")


# ==================== DISPATCH TABLE ====================


Handler = Callable[[ChainQueryClient, RPCRequest], RPCResult]

HANDLERS: Dict[Type[RPCRequest], Handler] = {
    QueryEpoch: lambda c, r: EpochResult(c.query_epoch()),
    QueryEpochAtHeight: lambda c, r: EpochAtHeightResult(c.query_epoch_at_height(r.height)),
    QueryProposalResult: lambda c, r: ProposalResultResult(c.query_proposal_result(r.proposal_id)),
    QueryProposalVotes: lambda c, r: ProposalVotesResult(c.query_proposal_votes(r.proposal_id)),
    QueryBalance: lambda c, r: BalanceResult(c.get_token_balance(r.token, r.owner)),
    QueryValidatorState: lambda c, r: ValidatorStateResult(
        c.get_validator_state(r.validator, r.epoch)
    ),
    QueryDelegatorDelegation: lambda c, r: DelegatorDelegationResult(
        c.get_delegators_delegation(r.owner)
    ),
    QueryDelegatorDelegationAt: lambda c, r: DelegatorDelegationAtResult(
        c.get_delegators_delegation_at(r.owner, r.epoch)
    ),
    QueryMetaData: lambda c, r: MetaDataResult(*c.query_metadata(r.validator, r.epoch)),
    QueryGovernanceParameters: lambda c, r: GovernanceParametersResult(
        c.query_governance_parameters()
    ),
    QueryPosParameters: lambda c, r: PosParametersResult(c.get_pos_params()),
    QueryCheckIsSteward: lambda c, r: IsStewardResult(c.is_steward(r.address)),
    QueryValidatorConsensusKeys: lambda c, r: ValidatorConsensusKeysResult(
        c.query_validator_consensus_keys(r.validator)
    ),
    QueryTxEvents: lambda c, r: TxEventsResult(resolve_tx_event(c, r.tx_hash)),
    QueryNativeToken: lambda c, r: NativeTokenResult(c.query_native_token()),
    QueryLatestBlock: lambda c, r: LatestBlockResult(c.query_block()),
    QueryCheckIsValidator: lambda c, r: IsValidatorResult(c.is_validator(r.address)),
    QueryCheckIsDelegator: lambda c, r: IsDelegatorResult(c.is_delegator(r.address)),
    QueryMaspReward: lambda c, r: MaspRewardResult(c.query_masp_reward_tokens()),
    QueryTotalStakedTokens: lambda c, r: TotalStakedTokensResult(
        c.get_total_staked_tokens(r.epoch)
    ),
    QueryValidatorStake: lambda c, r: ValidatorStakeResult(
        c.get_validator_stake(r.epoch, r.validator)
    ),
}


def dispatch(client: ChainQueryClient, request: RPCRequest) -> RPCResult:
    """Run the single upstream call for a request"""
    handler = HANDLERS[type(request)]
    return handler(client, request)


# ==================== EXECUTOR ====================


class RPCExecutor:
    """
    Runs upstream queries on a dedicated worker pool.

    The calling (request) thread blocks until the worker finishes. Errors the
    client reports pass through unchanged; a worker that is cancelled or dies
    surfaces as ExecutionError.
    """

    def __init__(self, client: ChainQueryClient, max_workers: int = 16):
        self.client = client
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="namada-rpc"
        )

    def execute(self, request: RPCRequest) -> RPCResult:
        """Execute a query and wait for its result"""
        try:
            future = self._pool.submit(dispatch, self.client, request)
        except RuntimeError as e:
            logger.error(f"Executor rejected {type(request).__name__}: {e}")
            raise ExecutionError("RPC executor is shut down") from e

        try:
            return future.result()
        except CancelledError as e:
            logger.error(f"{type(request).__name__} was cancelled before completion")
            raise ExecutionError("RPC query was cancelled before completion") from e
        except GatewayError:
            raise
        except Exception as e:
            logger.exception(f"RPC worker failed running {type(request).__name__}")
            raise ExecutionError(f"RPC query failed to complete: {e}") from e

    def shutdown(self, wait: bool = False) -> None:
        """Stop the pool, cancelling queries that have not started"""
        self._pool.shutdown(wait=wait, cancel_futures=True)
