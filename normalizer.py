"""
Namada REST Gateway - Result Normalization
Turns raw query results into the JSON bodies returned by each endpoint.
Amounts and decimals are always rendered as strings.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Callable, Dict, Optional, Type

from errors import NotFoundError
from namada_types import (
    CommissionPair,
    Event,
    GovernanceParameters,
    LastBlock,
    MaspTokenRewardData,
    PosParams,
    ProposalResult,
    PublicKey,
    TallyType,
    ValidatorMetaData,
    ValidatorState,
    Vote,
    dec_fraction,
    format_amount,
    format_dec,
    mul_ceil,
)
from query import (
    BalanceResult,
    DelegatorDelegationAtResult,
    DelegatorDelegationResult,
    EpochAtHeightResult,
    EpochResult,
    GovernanceParametersResult,
    IsDelegatorResult,
    IsStewardResult,
    IsValidatorResult,
    LatestBlockResult,
    MaspRewardResult,
    MetaDataResult,
    NativeTokenResult,
    PosParametersResult,
    ProposalResultResult,
    ProposalVotesResult,
    RPCResult,
    TotalStakedTokensResult,
    TxEventsResult,
    ValidatorConsensusKeysResult,
    ValidatorStakeResult,
    ValidatorStateResult,
)

NO_EPOCH = "None"
NO_BLOCK = "Error to query latest block"
NO_VALIDATOR_STATE = (
    "Your validator is either not a validator, or an epoch before the current "
    "epoch has been queried (and the validator state information is no longer stored)"
)
PROPOSAL_NOT_FOUND = "proposal not found"

TWO_THIRDS = dec_fraction(2, 3)
ONE_THIRD = dec_fraction(1, 3)


# ==================== VALUE FORMATTERS ====================


def format_validator_state(state: Optional[ValidatorState]) -> str:
    if state is None:
        return NO_VALIDATOR_STATE
    return state.value


def format_public_key(public_key: Optional[PublicKey]) -> Optional[str]:
    """Canonical key string for either scheme; None when the validator has no key"""
    if public_key is None:
        return None
    return str(public_key)


def format_event(event: Event) -> Dict[str, Any]:
    return {
        "event_type": event.event_type.value,
        "level": event.level.value,
        "attributes": dict(event.attributes),
    }


def format_vote(vote: Vote) -> Dict[str, str]:
    return {
        "validator": str(vote.validator),
        "delegator": str(vote.delegator),
        "data": vote.data.value,
    }


def format_proposal_result(proposal: ProposalResult) -> Dict[str, Any]:
    """
    Render a proposal tally with its pass threshold.

    The threshold is the share of total voting power the tally type requires,
    rounded up: two thirds for TwoThirds tallies, one third otherwise.
    """
    total = proposal.total_voting_power
    if proposal.tally_type == TallyType.TWO_THIRDS:
        threshold = mul_ceil(total, TWO_THIRDS)
    else:
        threshold = mul_ceil(total, ONE_THIRD)

    thresh_frac = dec_fraction(threshold, total) if total else dec_fraction(0, 1)

    return {
        "result": proposal.result.value,
        "total_voting_power": format_amount(total),
        "total_yay_power": format_amount(proposal.total_yay_power),
        "total_nay_power": format_amount(proposal.total_nay_power),
        "total_abstain_power": format_amount(proposal.total_abstain_power),
        "threshold": format_amount(threshold),
        "thresh_frac": format_dec(thresh_frac),
    }


def format_commission(commission: Optional[CommissionPair]) -> Optional[Dict[str, str]]:
    if commission is None:
        return None
    return {
        "commission_rate": format_dec(commission.commission_rate),
        "max_commission_change_per_epoch": format_dec(commission.max_commission_change_per_epoch),
    }


def format_metadata(metadata: Optional[ValidatorMetaData]) -> Optional[Dict[str, Any]]:
    if metadata is None:
        return None
    return asdict(metadata)


def format_governance_parameters(params: GovernanceParameters) -> Dict[str, str]:
    return {
        "min_proposal_fund": format_amount(params.min_proposal_fund),
        "max_proposal_code_size": str(params.max_proposal_code_size),
        "min_proposal_voting_period": str(params.min_proposal_voting_period),
        "max_proposal_period": str(params.max_proposal_period),
        "max_proposal_content_size": str(params.max_proposal_content_size),
        "min_proposal_grace_epochs": str(params.min_proposal_grace_epochs),
    }


def format_pos_params(params: PosParams) -> Dict[str, Any]:
    """Decimal and amount fields as strings, slot/length counts as numbers"""
    owned = params.owned
    return {
        "owned": {
            "max_validator_slots": owned.max_validator_slots,
            "pipeline_len": owned.pipeline_len,
            "unbonding_len": owned.unbonding_len,
            "tm_votes_per_token": format_dec(owned.tm_votes_per_token),
            "block_proposer_reward": format_dec(owned.block_proposer_reward),
            "block_vote_reward": format_dec(owned.block_vote_reward),
            "max_inflation_rate": format_dec(owned.max_inflation_rate),
            "target_staked_ratio": format_dec(owned.target_staked_ratio),
            "duplicate_vote_min_slash_rate": format_dec(owned.duplicate_vote_min_slash_rate),
            "light_client_attack_min_slash_rate": format_dec(
                owned.light_client_attack_min_slash_rate
            ),
            "cubic_slashing_window_length": owned.cubic_slashing_window_length,
            "validator_stake_threshold": format_amount(owned.validator_stake_threshold),
            "liveness_window_check": owned.liveness_window_check,
            "liveness_threshold": format_dec(owned.liveness_threshold),
            "rewards_gain_p": format_dec(owned.rewards_gain_p),
            "rewards_gain_d": format_dec(owned.rewards_gain_d),
        },
        "max_proposal_period": params.max_proposal_period,
    }


def format_last_block(block: LastBlock) -> Dict[str, Any]:
    return {"height": block.height, "hash": block.hash, "time": block.time}


def format_masp_reward(reward: MaspTokenRewardData) -> Dict[str, str]:
    return {
        "name": reward.name,
        "address": str(reward.address),
        "max_reward_rate": format_dec(reward.max_reward_rate),
        "kp_gain": format_dec(reward.kp_gain),
        "kd_gain": format_dec(reward.kd_gain),
        "locked_amount_target": format_amount(reward.locked_amount_target),
    }


# ==================== RESULT NORMALIZERS ====================


def _proposal_result(result: ProposalResultResult) -> Dict[str, Any]:
    if result.proposal is None:
        raise NotFoundError(PROPOSAL_NOT_FOUND)
    return format_proposal_result(result.proposal)


def _epoch_at_height(result: EpochAtHeightResult) -> Dict[str, Any]:
    return {"epoch": NO_EPOCH if result.epoch is None else result.epoch}


def _latest_block(result: LatestBlockResult) -> Dict[str, Any]:
    if result.block is None:
        return {"data": NO_BLOCK}
    return {"data": format_last_block(result.block)}


NORMALIZERS: Dict[Type[RPCResult], Callable[[Any], Dict[str, Any]]] = {
    EpochResult: lambda r: {"epoch": r.epoch},
    EpochAtHeightResult: _epoch_at_height,
    ProposalResultResult: _proposal_result,
    ProposalVotesResult: lambda r: {"data": [format_vote(v) for v in r.votes]},
    BalanceResult: lambda r: {"balance": format_amount(r.amount)},
    ValidatorStateResult: lambda r: {"state": format_validator_state(r.state)},
    # Sets have no order; sort so repeated queries render identically
    DelegatorDelegationResult: lambda r: {"data": sorted(str(a) for a in r.validators)},
    DelegatorDelegationAtResult: lambda r: {
        "data": {str(a): format_amount(amount) for a, amount in sorted(r.delegations.items())}
    },
    MetaDataResult: lambda r: {
        "metadata": format_metadata(r.metadata),
        "commission": format_commission(r.commission),
    },
    GovernanceParametersResult: lambda r: {"data": format_governance_parameters(r.parameters)},
    PosParametersResult: lambda r: {"data": format_pos_params(r.parameters)},
    IsStewardResult: lambda r: {"data": r.is_steward},
    ValidatorConsensusKeysResult: lambda r: {"data": format_public_key(r.public_key)},
    TxEventsResult: lambda r: {"data": format_event(r.event)},
    NativeTokenResult: lambda r: {"address": str(r.address)},
    LatestBlockResult: _latest_block,
    IsValidatorResult: lambda r: {"data": r.is_validator},
    IsDelegatorResult: lambda r: {"data": r.is_delegator},
    MaspRewardResult: lambda r: {"data": [format_masp_reward(m) for m in r.rewards]},
    TotalStakedTokensResult: lambda r: {"total": format_amount(r.amount)},
    ValidatorStakeResult: lambda r: {"total": format_amount(r.amount)},
}


def normalize(result: RPCResult) -> Dict[str, Any]:
    """Render a raw query result as the endpoint's JSON body"""
    return NORMALIZERS[type(result)](result)
