"""
Namada domain types and value codecs
Typed views of the values returned by a Namada node, plus the conversion
rules that make them JSON safe (amounts and decimals as strings, never floats)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Context, Decimal, InvalidOperation, ROUND_CEILING, ROUND_DOWN
from enum import Enum
from typing import Any, Dict, Optional, Union

from errors import DecodeError

# Namada `Dec` carries 12 fractional digits
DEC_PLACES = 12
_DEC_QUANTUM = Decimal(1).scaleb(-DEC_PLACES)

# Wide enough for 256-bit integers plus the fractional digits
_CONTEXT = Context(prec=100, rounding=ROUND_DOWN)

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32M_CONST = 0x2BC830A3
_BECH32_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
ADDRESS_HRP = "tnam"
ADDRESS_PATTERN = re.compile(rf"^{ADDRESS_HRP}1[{_BECH32_CHARSET}]{{40}}$")
_DIGITS_PATTERN = re.compile(r"^\d+$")

Epoch = int
BlockHeight = int
Amount = int


# ==================== SCALAR CODECS ====================


def parse_amount(value: Union[str, int]) -> Amount:
    """Parse a non-negative integer amount from a decimal string or int"""
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, str):
        if not _DIGITS_PATTERN.match(value):
            raise ValueError(f"Invalid amount: {value!r}")
        return int(value)
    if value < 0:
        raise ValueError(f"Invalid amount: {value!r}")
    return value


def format_amount(amount: Amount) -> str:
    return str(amount)


def parse_dec(value: Union[str, int, Decimal]) -> Decimal:
    """Parse a fixed-point decimal, truncating to 12 fractional digits"""
    if isinstance(value, (bool, float)):
        raise ValueError(f"Invalid decimal: {value!r}")
    try:
        dec = Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid decimal: {value!r}") from e
    if not dec.is_finite():
        raise ValueError(f"Invalid decimal: {value!r}")
    return truncate_dec(dec)


def truncate_dec(value: Decimal) -> Decimal:
    return value.quantize(_DEC_QUANTUM, rounding=ROUND_DOWN, context=_CONTEXT)


def format_dec(value: Decimal) -> str:
    """Render a decimal without exponent or trailing zeros ("0.05", "1")"""
    truncated = truncate_dec(value)
    if truncated == 0:
        return "0"
    return format(truncated.normalize(context=_CONTEXT), "f")


def dec_fraction(numerator: int, denominator: int) -> Decimal:
    """numerator / denominator as a truncated 12-digit decimal"""
    quotient = _CONTEXT.divide(Decimal(numerator), Decimal(denominator))
    return truncate_dec(quotient)


def mul_ceil(amount: Amount, dec: Decimal) -> Amount:
    """amount * dec, rounded up to the next integer"""
    product = _CONTEXT.multiply(Decimal(amount), dec)
    return int(product.to_integral_value(rounding=ROUND_CEILING, context=_CONTEXT))


# ==================== ENUMS ====================


class ValidatorState(Enum):
    """Validator set membership at an epoch"""
    CONSENSUS = "Consensus"
    BELOW_CAPACITY = "BelowCapacity"
    BELOW_THRESHOLD = "BelowThreshold"
    INACTIVE = "Inactive"
    JAILED = "Jailed"


class KeyScheme(Enum):
    """Signature scheme of a public key"""
    ED25519 = "Ed25519"
    SECP256K1 = "Secp256k1"


class EventType(Enum):
    ACCEPTED = "Accepted"
    APPLIED = "Applied"


class EventLevel(Enum):
    BLOCK = "Block"
    TX = "Tx"


class TallyType(Enum):
    """Vote-power aggregation rule of a proposal"""
    TWO_THIRDS = "TwoThirds"
    ONE_HALF_OVER_ONE_THIRD = "OneHalfOverOneThird"
    LESS_ONE_HALF_OVER_ONE_THIRD_NAY = "LessOneHalfOverOneThirdNay"


class TallyResult(Enum):
    PASSED = "passed"
    REJECTED = "rejected"


class ProposalVote(Enum):
    YAY = "yay"
    NAY = "nay"
    ABSTAIN = "abstain"


class TxEventQuery(Enum):
    """Which event kind to look up for a transaction hash"""
    APPLIED = "applied"
    ACCEPTED = "accepted"


# ==================== ADDRESSES AND KEYS ====================


def _bech32_polymod(values) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for i, generator in enumerate(_BECH32_GENERATORS):
            if (top >> i) & 1:
                chk ^= generator
    return chk


def _bech32m_verify(hrp: str, data: str) -> bool:
    """Check the bech32m (BIP-350) checksum of an address data part"""
    expanded = [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]
    values = expanded + [_BECH32_CHARSET.index(c) for c in data]
    return _bech32_polymod(values) == _BECH32M_CONST


@dataclass(frozen=True, order=True)
class Address:
    """Validated Namada address (tnam1...)"""

    value: str

    @classmethod
    def decode(cls, value: str) -> Address:
        if not isinstance(value, str) or not ADDRESS_PATTERN.match(value):
            raise DecodeError(f"Invalid address: {value!r}")
        if not _bech32m_verify(ADDRESS_HRP, value[len(ADDRESS_HRP) + 1:]):
            raise DecodeError(f"Invalid address checksum: {value!r}")
        return cls(value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PublicKey:
    """Public key tagged with its signature scheme"""

    scheme: KeyScheme
    value: str

    @classmethod
    def from_json(cls, data: Dict[str, str]) -> PublicKey:
        if not isinstance(data, dict) or len(data) != 1:
            raise ValueError(f"Invalid public key: {data!r}")
        (tag, value), = data.items()
        if not isinstance(value, str):
            raise ValueError(f"Invalid public key: {data!r}")
        return cls(scheme=KeyScheme(tag), value=value)

    def __str__(self) -> str:
        return self.value


def parse_address(value: str) -> Address:
    """Decode an address reported by the node"""
    try:
        return Address.decode(value)
    except DecodeError as e:
        raise ValueError(str(e)) from e


# ==================== RECORDS ====================


@dataclass
class Event:
    """Transaction event emitted by the ledger"""

    event_type: EventType
    level: EventLevel
    attributes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> Event:
        attributes = data.get("attributes") or {}
        return cls(
            event_type=EventType(data["event_type"]),
            level=EventLevel(data["level"]),
            attributes={str(k): str(v) for k, v in attributes.items()},
        )


@dataclass
class ProposalResult:
    """Tally of a governance proposal"""

    result: TallyResult
    tally_type: TallyType
    total_voting_power: Amount
    total_yay_power: Amount
    total_nay_power: Amount
    total_abstain_power: Amount

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> ProposalResult:
        return cls(
            result=TallyResult(data["result"]),
            tally_type=TallyType(data["tally_type"]),
            total_voting_power=parse_amount(data["total_voting_power"]),
            total_yay_power=parse_amount(data["total_yay_power"]),
            total_nay_power=parse_amount(data["total_nay_power"]),
            total_abstain_power=parse_amount(data["total_abstain_power"]),
        )


@dataclass
class Vote:
    """Single proposal vote"""

    validator: Address
    delegator: Address
    data: ProposalVote

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> Vote:
        return cls(
            validator=parse_address(data["validator"]),
            delegator=parse_address(data["delegator"]),
            data=ProposalVote(data["data"]),
        )


@dataclass
class CommissionPair:
    """Validator commission rate and its per-epoch change limit"""

    commission_rate: Decimal
    max_commission_change_per_epoch: Decimal

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> CommissionPair:
        return cls(
            commission_rate=parse_dec(data["commission_rate"]),
            max_commission_change_per_epoch=parse_dec(data["max_commission_change_per_epoch"]),
        )


@dataclass
class ValidatorMetaData:
    """Self-reported validator information"""

    email: str
    description: Optional[str] = None
    website: Optional[str] = None
    discord_handle: Optional[str] = None
    avatar: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> ValidatorMetaData:
        return cls(
            email=data["email"],
            description=data.get("description"),
            website=data.get("website"),
            discord_handle=data.get("discord_handle"),
            avatar=data.get("avatar"),
            name=data.get("name"),
        )


@dataclass
class GovernanceParameters:
    """Chain-wide governance parameters"""

    min_proposal_fund: Amount
    max_proposal_code_size: int
    min_proposal_voting_period: int
    max_proposal_period: int
    max_proposal_content_size: int
    min_proposal_grace_epochs: int

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> GovernanceParameters:
        return cls(
            min_proposal_fund=parse_amount(data["min_proposal_fund"]),
            max_proposal_code_size=int(data["max_proposal_code_size"]),
            min_proposal_voting_period=int(data["min_proposal_voting_period"]),
            max_proposal_period=int(data["max_proposal_period"]),
            max_proposal_content_size=int(data["max_proposal_content_size"]),
            min_proposal_grace_epochs=int(data["min_proposal_grace_epochs"]),
        )


@dataclass
class OwnedPosParams:
    """Proof-of-stake parameters owned by the PoS module"""

    max_validator_slots: int
    pipeline_len: int
    unbonding_len: int
    tm_votes_per_token: Decimal
    block_proposer_reward: Decimal
    block_vote_reward: Decimal
    max_inflation_rate: Decimal
    target_staked_ratio: Decimal
    duplicate_vote_min_slash_rate: Decimal
    light_client_attack_min_slash_rate: Decimal
    cubic_slashing_window_length: int
    validator_stake_threshold: Amount
    liveness_window_check: int
    liveness_threshold: Decimal
    rewards_gain_p: Decimal
    rewards_gain_d: Decimal

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> OwnedPosParams:
        return cls(
            max_validator_slots=int(data["max_validator_slots"]),
            pipeline_len=int(data["pipeline_len"]),
            unbonding_len=int(data["unbonding_len"]),
            tm_votes_per_token=parse_dec(data["tm_votes_per_token"]),
            block_proposer_reward=parse_dec(data["block_proposer_reward"]),
            block_vote_reward=parse_dec(data["block_vote_reward"]),
            max_inflation_rate=parse_dec(data["max_inflation_rate"]),
            target_staked_ratio=parse_dec(data["target_staked_ratio"]),
            duplicate_vote_min_slash_rate=parse_dec(data["duplicate_vote_min_slash_rate"]),
            light_client_attack_min_slash_rate=parse_dec(data["light_client_attack_min_slash_rate"]),
            cubic_slashing_window_length=int(data["cubic_slashing_window_length"]),
            validator_stake_threshold=parse_amount(data["validator_stake_threshold"]),
            liveness_window_check=int(data["liveness_window_check"]),
            liveness_threshold=parse_dec(data["liveness_threshold"]),
            rewards_gain_p=parse_dec(data["rewards_gain_p"]),
            rewards_gain_d=parse_dec(data["rewards_gain_d"]),
        )


@dataclass
class PosParams:
    """Full proof-of-stake parameters"""

    owned: OwnedPosParams
    max_proposal_period: int

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> PosParams:
        return cls(
            owned=OwnedPosParams.from_json(data["owned"]),
            max_proposal_period=int(data["max_proposal_period"]),
        )


@dataclass
class LastBlock:
    """Last committed block"""

    height: BlockHeight
    hash: str
    time: str

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> LastBlock:
        return cls(
            height=int(data["height"]),
            hash=str(data["hash"]),
            time=str(data["time"]),
        )


@dataclass
class MaspTokenRewardData:
    """Shielded pool reward parameters for one token"""

    name: str
    address: Address
    max_reward_rate: Decimal
    kp_gain: Decimal
    kd_gain: Decimal
    locked_amount_target: Amount

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> MaspTokenRewardData:
        return cls(
            name=str(data["name"]),
            address=parse_address(data["address"]),
            max_reward_rate=parse_dec(data["max_reward_rate"]),
            kp_gain=parse_dec(data["kp_gain"]),
            kd_gain=parse_dec(data["kd_gain"]),
            locked_amount_target=parse_amount(data["locked_amount_target"]),
        )
