"""
Namada REST Gateway
Read-only JSON API over a Namada node: epochs, balances, validator and
delegator status, governance, staking parameters and transaction events.
"""

from __future__ import annotations

import atexit
import logging
import time
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from flasgger import Swagger
from werkzeug.exceptions import HTTPException

from config import config
from errors import DecodeError, GatewayError
from namada_rpc_client import ChainQueryClient, NamadaRPCClient
from namada_types import Address
from normalizer import normalize
from query import (
    QueryBalance,
    QueryCheckIsDelegator,
    QueryCheckIsSteward,
    QueryCheckIsValidator,
    QueryDelegatorDelegation,
    QueryDelegatorDelegationAt,
    QueryEpoch,
    QueryEpochAtHeight,
    QueryGovernanceParameters,
    QueryLatestBlock,
    QueryMaspReward,
    QueryMetaData,
    QueryNativeToken,
    QueryPosParameters,
    QueryProposalResult,
    QueryProposalVotes,
    QueryTotalStakedTokens,
    QueryTxEvents,
    QueryValidatorConsensusKeys,
    QueryValidatorStake,
    QueryValidatorState,
    RPCExecutor,
    RPCRequest,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)

EXECUTOR_KEY = "rpc_executor"

api = Blueprint("namada", __name__)


# ==================== SWAGGER CONFIGURATION ====================

swagger_config = {
    "headers": [],
    "specs": [
        {
            "endpoint": 'apispec',
            "route": '/apispec.json',
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/api/docs"
}

swagger_template = {
    "info": {
        "title": "Namada REST API",
        "description": "Read-only API for Namada chain state - epochs, balances, staking, governance and transaction events",
        "version": "1.0.0",
    },
    "basePath": "/",
    "schemes": ["https", "http"],
    "tags": [
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Chain", "description": "Epoch, block and token endpoints"},
        {"name": "Accounts", "description": "Balance and role endpoints"},
        {"name": "Staking", "description": "Validator and delegation endpoints"},
        {"name": "Governance", "description": "Governance proposal endpoints"},
        {"name": "Transactions", "description": "Transaction event endpoints"},
    ]
}


# ==================== APP FACTORY ====================

def create_app(
    config_class: type = config,
    client: Optional[ChainQueryClient] = None,
) -> Flask:
    """
    Build the gateway app.

    The RPC client is created once here (or injected) and shared read-only
    by every request through the app's executor.
    """
    app = Flask(__name__)
    app.config.from_object(config_class)
    # A lone "*" allows any origin without echoing it back
    origins = config_class.CORS_ORIGINS
    CORS(app, origins="*" if origins == ["*"] else origins)
    Swagger(app, config=swagger_config, template=swagger_template)

    if client is None:
        client = NamadaRPCClient(
            config_class.NODE_RPC_URL,
            timeout=config_class.RPC_TIMEOUT,
            pool_size=config_class.RPC_WORKERS,
        )
    executor = RPCExecutor(client, max_workers=config_class.RPC_WORKERS)
    app.extensions[EXECUTOR_KEY] = executor

    app.register_blueprint(api)
    return app


def _executor() -> RPCExecutor:
    return current_app.extensions[EXECUTOR_KEY]


def _respond(rpc_request: RPCRequest):
    result = _executor().execute(rpc_request)
    return jsonify(normalize(result))


# ==================== ERROR HANDLING ====================

@api.app_errorhandler(GatewayError)
def handle_gateway_error(error: GatewayError):
    logger.warning(f"{request.path} failed ({error.kind.value}): {error}")
    return jsonify(error.to_dict()), error.status_code


@api.app_errorhandler(HTTPException)
def handle_http_error(error: HTTPException):
    return jsonify({"error": error.description}), error.code


@api.app_errorhandler(Exception)
def handle_unexpected_error(error: Exception):
    logger.exception(f"Unhandled error on {request.path}")
    return jsonify({"error": "Internal server error"}), 500


# ==================== CHAIN ENDPOINTS ====================

@api.route("/epoch", methods=["GET"])
def get_epoch():
    """
    Get current epoch
    ---
    tags:
      - Chain
    responses:
      200:
        description: Current epoch
        schema:
          type: object
          properties:
            epoch:
              type: integer
    """
    return _respond(QueryEpoch())


@api.route("/epoch_at_height/<int:height>", methods=["GET"])
def get_epoch_at_height(height):
    """
    Get epoch of a block height
    ---
    tags:
      - Chain
    parameters:
      - name: height
        in: path
        type: integer
        required: true
        description: Block height
    responses:
      200:
        description: Epoch at height, or "None" when the height is unknown
    """
    return _respond(QueryEpochAtHeight(height))


@api.route("/native_token", methods=["GET"])
def get_native_token():
    """
    Get native token address
    ---
    tags:
      - Chain
    responses:
      200:
        description: Native token address
        schema:
          type: object
          properties:
            address:
              type: string
    """
    return _respond(QueryNativeToken())


@api.route("/query_block", methods=["GET"])
def get_latest_block():
    """
    Get last committed block
    ---
    tags:
      - Chain
    responses:
      200:
        description: Height, hash and time of the last committed block
    """
    return _respond(QueryLatestBlock())


@api.route("/masp_reward", methods=["GET"])
def get_masp_reward():
    """
    Get shielded pool reward parameters
    ---
    tags:
      - Chain
    responses:
      200:
        description: Reward data per MASP token
    """
    return _respond(QueryMaspReward())


# ==================== ACCOUNT ENDPOINTS ====================

@api.route("/balance/<wallet>", methods=["GET"])
def get_balance(wallet):
    """
    Get native token balance
    ---
    tags:
      - Accounts
    parameters:
      - name: wallet
        in: path
        type: string
        required: true
        description: Namada address (tnam1...)
    responses:
      200:
        description: Balance as a decimal string
        schema:
          type: object
          properties:
            balance:
              type: string
      400:
        description: Malformed address
    """
    owner = Address.decode(wallet)
    try:
        token = Address.decode(current_app.config["NATIVE_TOKEN_ADDRESS"])
    except DecodeError as e:
        raise DecodeError("Error decoding address.") from e
    return _respond(QueryBalance(token, owner))


@api.route("/is_steward/<wallet>", methods=["GET"])
def check_steward(wallet):
    """
    Check whether an address is a PGF steward
    ---
    tags:
      - Accounts
    parameters:
      - name: wallet
        in: path
        type: string
        required: true
    responses:
      200:
        description: Boolean under "data"
    """
    return _respond(QueryCheckIsSteward(Address.decode(wallet)))


@api.route("/is_validator/<wallet>", methods=["GET"])
def check_is_validator(wallet):
    """
    Check whether an address is a validator
    ---
    tags:
      - Accounts
    parameters:
      - name: wallet
        in: path
        type: string
        required: true
    responses:
      200:
        description: Boolean under "data"
    """
    return _respond(QueryCheckIsValidator(Address.decode(wallet)))


@api.route("/is_delegator/<wallet>", methods=["GET"])
def check_is_delegator(wallet):
    """
    Check whether an address is a delegator
    ---
    tags:
      - Accounts
    parameters:
      - name: wallet
        in: path
        type: string
        required: true
    responses:
      200:
        description: Boolean under "data"
    """
    return _respond(QueryCheckIsDelegator(Address.decode(wallet)))


# ==================== STAKING ENDPOINTS ====================

@api.route("/validator_state/<address>/<int:epoch>", methods=["GET"])
def get_validator_state(address, epoch):
    """
    Get validator state at an epoch
    ---
    tags:
      - Staking
    parameters:
      - name: address
        in: path
        type: string
        required: true
      - name: epoch
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Consensus, BelowCapacity, BelowThreshold, Inactive, Jailed, or an explanation when unknown
    """
    return _respond(QueryValidatorState(Address.decode(address), epoch))


@api.route("/delegator_delegation/<wallet>", methods=["GET"])
def get_delegators_delegation(wallet):
    """
    Get validators a delegator has bonded to
    ---
    tags:
      - Staking
    parameters:
      - name: wallet
        in: path
        type: string
        required: true
    responses:
      200:
        description: Sorted list of validator addresses under "data"
    """
    return _respond(QueryDelegatorDelegation(Address.decode(wallet)))


@api.route("/delegator_delegation_at/<wallet>/<int:epoch>", methods=["GET"])
def get_delegators_delegation_at(wallet, epoch):
    """
    Get a delegator's bonds per validator at an epoch
    ---
    tags:
      - Staking
    parameters:
      - name: wallet
        in: path
        type: string
        required: true
      - name: epoch
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Map of validator address to bonded amount under "data"
    """
    return _respond(QueryDelegatorDelegationAt(Address.decode(wallet), epoch))


@api.route("/metadata/<address>/<int:epoch>", methods=["GET"])
def get_meta_data(address, epoch):
    """
    Get validator metadata and commission
    ---
    tags:
      - Staking
    parameters:
      - name: address
        in: path
        type: string
        required: true
      - name: epoch
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Metadata and commission, each null when not set
    """
    return _respond(QueryMetaData(Address.decode(address), epoch))


@api.route("/pos_params", methods=["GET"])
def get_pos_parameters():
    """
    Get proof-of-stake parameters
    ---
    tags:
      - Staking
    responses:
      200:
        description: PoS parameters under "data"
    """
    return _respond(QueryPosParameters())


@api.route("/validator_consensus_keys/<wallet>", methods=["GET"])
def get_validator_consensus_keys(wallet):
    """
    Get a validator's consensus key
    ---
    tags:
      - Staking
    parameters:
      - name: wallet
        in: path
        type: string
        required: true
    responses:
      200:
        description: Public key string, or null
    """
    return _respond(QueryValidatorConsensusKeys(Address.decode(wallet)))


@api.route("/total_staked/<int:epoch>", methods=["GET"])
def get_total_staked_tokens(epoch):
    """
    Get total staked tokens at an epoch
    ---
    tags:
      - Staking
    parameters:
      - name: epoch
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Total stake as a decimal string
    """
    return _respond(QueryTotalStakedTokens(epoch))


@api.route("/validator_stake/<address>/<int:epoch>", methods=["GET"])
def get_validator_stake(address, epoch):
    """
    Get a validator's stake at an epoch
    ---
    tags:
      - Staking
    parameters:
      - name: address
        in: path
        type: string
        required: true
      - name: epoch
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Validator stake as a decimal string
    """
    return _respond(QueryValidatorStake(epoch, Address.decode(address)))


# ==================== GOVERNANCE ENDPOINTS ====================

@api.route("/proposal_result/<int:proposal_id>", methods=["GET"])
def get_proposal_result(proposal_id):
    """
    Get proposal tally result
    ---
    tags:
      - Governance
    parameters:
      - name: proposal_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Tally totals with pass threshold
        schema:
          type: object
          properties:
            result:
              type: string
            total_voting_power:
              type: string
            total_yay_power:
              type: string
            total_nay_power:
              type: string
            total_abstain_power:
              type: string
            threshold:
              type: string
            thresh_frac:
              type: string
      404:
        description: Proposal not found
    """
    return _respond(QueryProposalResult(proposal_id))


@api.route("/proposal_votes/<int:proposal_id>", methods=["GET"])
def get_proposal_votes(proposal_id):
    """
    Get votes cast on a proposal
    ---
    tags:
      - Governance
    parameters:
      - name: proposal_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: List of validator, delegator and vote
    """
    return _respond(QueryProposalVotes(proposal_id))


@api.route("/governance", methods=["GET"])
def get_governance_parameters():
    """
    Get governance parameters
    ---
    tags:
      - Governance
    responses:
      200:
        description: Governance parameters under "data"
    """
    return _respond(QueryGovernanceParameters())


# ==================== TRANSACTION ENDPOINTS ====================

@api.route("/tx_event/<tx_hash>", methods=["GET"])
def get_tx_events(tx_hash):
    """
    Get the event of a transaction
    ---
    tags:
      - Transactions
    parameters:
      - name: tx_hash
        in: path
        type: string
        required: true
    responses:
      200:
        description: Applied event, or the Accepted event when not yet applied
      404:
        description: No event found for the transaction
    """
    return _respond(QueryTxEvents(tx_hash))


# ==================== HEALTH CHECK ====================

@api.route("/health", methods=["GET"])
def health_check():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: Health status
    """
    executor = _executor()
    node_status = executor.client.health()
    return jsonify({
        "status": "healthy" if node_status else "degraded",
        "node": {
            "reachable": node_status,
            "rpc": current_app.config["NODE_RPC_URL"],
        },
        "timestamp": time.time()
    }), 200


@api.route("/", methods=["GET"])
def gateway_info():
    return "Namada REST API Running"


if __name__ == "__main__":
    app = create_app()
    atexit.register(app.extensions[EXECUTOR_KEY].shutdown)
    logger.info("Starting Namada REST API")
    logger.info(f"Node RPC URL: {config.NODE_RPC_URL}")
    logger.info(f"Native token: {config.NATIVE_TOKEN_ADDRESS}")
    logger.info(f"Listening on {config.GATEWAY_HOST}:{config.GATEWAY_PORT}")

    app.run(
        host=config.GATEWAY_HOST,
        port=config.GATEWAY_PORT,
        debug=config.DEBUG,
        threaded=True
    )
