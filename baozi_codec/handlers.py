"""Typed entry points for a dispatch layer.

Every handler takes a pydantic request plus whatever account bytes the caller
already fetched, and returns either a ``TxResponse`` or a validation/quote
model. Malformed input raises ``InputError``; business-rule rejections come
back as ``valid=False`` results.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from .bet_rules import validate_bet
from .config import DEFAULT_CONFIG, ProtocolConfig, lamports_to_sol, load_pubkey, sol_to_lamports
from .constants import AccessGate, Layer, parse_layer
from .creation_rules import validate_affiliate_code, validate_race_outcomes
from .errors import InputError
from .layouts import (
    is_whitelist_required,
    parse_global_config_account,
    parse_market_account,
    read_market_gating,
    read_market_id,
    read_race_market_field,
)
from .models import (
    BatchClaimRequest,
    BetQuote,
    BetRequest,
    BetValidation,
    ClaimRequest,
    CreateLabMarketRequest,
    CreatePrivateMarketRequest,
    CreateRaceMarketRequest,
    InstructionMeta,
    KeyMeta,
    QuoteRequest,
    RaceBetRequest,
    TxResponse,
)
from .pda import market_pda, position_pda, race_market_pda, race_position_pda
from .quote import calculate_bet_quote
from .transaction import instruction_to_dict, message_from_instructions, unsigned_transaction_b64
from .tx_builder import (
    build_claim_batch_ixs,
    build_claim_refund_ix,
    build_claim_winnings_ix,
    build_create_lab_market_ix,
    build_create_private_market_ix,
    build_create_race_market_ix,
    build_place_bet_ix,
    build_race_bet_ix,
)

logger = logging.getLogger("baozi")


def wrap_instruction_meta(raw: dict) -> InstructionMeta:
    return InstructionMeta(
        program_id=raw["program_id"],
        keys=[KeyMeta(**k) for k in raw["keys"]],
        data=raw["data"],
    )


def to_unix(value: datetime) -> int:
    if value.tzinfo is None:
        raise InputError("timestamps must be timezone-aware")
    return int(value.timestamp())


def from_unix(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _tx_response(
    ixs: List[Instruction], payer: Pubkey, blockhash: Optional[str], accounts: Optional[Dict[str, Pubkey]] = None
) -> TxResponse:
    resp = TxResponse(
        instructions=[wrap_instruction_meta(instruction_to_dict(ix)) for ix in ixs],
        accounts={name: str(pk) for name, pk in (accounts or {}).items()},
    )
    if blockhash:
        resp.recent_blockhash = blockhash
        resp.message_b64 = message_from_instructions(ixs, payer, blockhash)
        resp.tx_v0_b64 = unsigned_transaction_b64(ixs, payer, blockhash)
    return resp


def _bet_lamports(amount_sol: float, cfg: ProtocolConfig) -> int:
    lamports = sol_to_lamports(amount_sol)
    if lamports < cfg.min_bet_lamports or lamports > cfg.max_bet_lamports:
        raise InputError(
            f"Bet amount {amount_sol} SOL outside "
            f"{lamports_to_sol(cfg.min_bet_lamports):g}-{lamports_to_sol(cfg.max_bet_lamports):g} SOL"
        )
    return lamports


def _affiliate(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    check = validate_affiliate_code(code)
    if not check.valid:
        raise InputError("; ".join(check.errors))
    return code


# ---------------------------------------------------------------------------
# betting
# ---------------------------------------------------------------------------


def build_bet(req: BetRequest, market_data: bytes, config: Optional[ProtocolConfig] = None) -> TxResponse:
    cfg = config or DEFAULT_CONFIG
    user = load_pubkey(req.wallet, "wallet")
    market = load_pubkey(req.market, "market")
    lamports = _bet_lamports(req.amount_sol, cfg)
    code = _affiliate(req.affiliate_code)

    market_id = read_market_id(market_data, cfg)
    layer, access_gate = read_market_gating(market_data, cfg)
    whitelist_required = is_whitelist_required(layer, access_gate)

    ix = build_place_bet_ix(
        user,
        market,
        market_id,
        req.side == "Yes",
        lamports,
        whitelist_required=whitelist_required,
        affiliate_code=code,
        config=cfg,
    )
    logger.info(
        "build_bet market=%s side=%s lamports=%s whitelist=%s affiliate=%s",
        market,
        req.side,
        lamports,
        whitelist_required,
        bool(code),
    )
    return _tx_response([ix], user, req.recent_blockhash, {"position": position_pda(market_id, user, cfg)})


def build_race_bet(req: RaceBetRequest, race_data: bytes, config: Optional[ProtocolConfig] = None) -> TxResponse:
    cfg = config or DEFAULT_CONFIG
    user = load_pubkey(req.wallet, "wallet")
    race_market = load_pubkey(req.race_market, "race_market")
    lamports = _bet_lamports(req.amount_sol, cfg)
    code = _affiliate(req.affiliate_code)

    market_id = read_race_market_field(race_data, "market_id", cfg)
    count = read_race_market_field(race_data, "outcome_count", cfg)
    if req.outcome_index < 0 or req.outcome_index >= count:
        raise InputError(f"Invalid outcome index {req.outcome_index}. Must be 0-{count - 1}")
    layer = read_race_market_field(race_data, "layer", cfg)
    access_gate = read_race_market_field(race_data, "access_gate", cfg)

    ix = build_race_bet_ix(
        user,
        race_market,
        market_id,
        req.outcome_index,
        lamports,
        whitelist_required=is_whitelist_required(layer, access_gate),
        affiliate_code=code,
        config=cfg,
    )
    logger.info("build_race_bet race=%s outcome=%s lamports=%s", race_market, req.outcome_index, lamports)
    return _tx_response([ix], user, req.recent_blockhash, {"position": race_position_pda(market_id, user, cfg)})


# ---------------------------------------------------------------------------
# claims
# ---------------------------------------------------------------------------


def build_claim(req: ClaimRequest, market_data: bytes, config: Optional[ProtocolConfig] = None) -> TxResponse:
    cfg = config or DEFAULT_CONFIG
    user = load_pubkey(req.wallet, "wallet")
    market = load_pubkey(req.market, "market")
    market_id = read_market_id(market_data, cfg)
    if req.refund:
        ix = build_claim_refund_ix(user, market, market_id, cfg)
    else:
        ix = build_claim_winnings_ix(user, market, market_id, cfg)
    logger.info("build_claim market=%s refund=%s", market, req.refund)
    return _tx_response([ix], user, req.recent_blockhash)


def build_batch_claim(req: BatchClaimRequest, config: Optional[ProtocolConfig] = None) -> TxResponse:
    cfg = config or DEFAULT_CONFIG
    if not req.claims:
        raise InputError("claims must not be empty")
    user = load_pubkey(req.wallet, "wallet")
    entries = [(load_pubkey(c.market, "market"), c.market_id, c.refund) for c in req.claims]
    ixs = build_claim_batch_ixs(user, entries, cfg)
    logger.info("build_batch_claim wallet=%s count=%s", user, len(ixs))
    return _tx_response(ixs, user, req.recent_blockhash)


# ---------------------------------------------------------------------------
# market creation
# ---------------------------------------------------------------------------


def _creation_context(wallet: str, creator_profile: Optional[str], config_data: bytes, cfg: ProtocolConfig):
    creator = load_pubkey(wallet, "wallet")
    profile = load_pubkey(creator_profile, "creator_profile") if creator_profile else None
    global_config = parse_global_config_account(config_data, cfg)
    return creator, profile, global_config["market_count"], global_config["treasury"]


def build_create_lab_market(
    req: CreateLabMarketRequest, config_data: bytes, config: Optional[ProtocolConfig] = None
) -> TxResponse:
    cfg = config or DEFAULT_CONFIG
    creator, profile, market_id, treasury = _creation_context(req.wallet, req.creator_profile, config_data, cfg)
    ix = build_create_lab_market_ix(
        creator,
        market_id,
        treasury,
        req.question,
        to_unix(req.closing_time),
        resolution_buffer=req.resolution_buffer_seconds,
        creator_profile=profile,
        config=cfg,
    )
    logger.info("build_create_lab_market market_id=%s creator=%s", market_id, creator)
    return _tx_response([ix], creator, req.recent_blockhash, {"market": market_pda(market_id, cfg)})


def build_create_private_market(
    req: CreatePrivateMarketRequest, config_data: bytes, config: Optional[ProtocolConfig] = None
) -> TxResponse:
    cfg = config or DEFAULT_CONFIG
    creator, profile, market_id, treasury = _creation_context(req.wallet, req.creator_profile, config_data, cfg)
    ix = build_create_private_market_ix(
        creator,
        market_id,
        treasury,
        req.question,
        to_unix(req.closing_time),
        resolution_buffer=req.resolution_buffer_seconds,
        creator_profile=profile,
        config=cfg,
    )
    logger.info("build_create_private_market market_id=%s creator=%s", market_id, creator)
    return _tx_response([ix], creator, req.recent_blockhash, {"market": market_pda(market_id, cfg)})


def build_create_race_market(
    req: CreateRaceMarketRequest, config_data: bytes, config: Optional[ProtocolConfig] = None
) -> TxResponse:
    cfg = config or DEFAULT_CONFIG
    outcomes = validate_race_outcomes(req.outcomes, cfg)
    if not outcomes.valid:
        raise InputError("; ".join(outcomes.errors))
    layer = parse_layer(req.layer)
    creator, profile, market_id, treasury = _creation_context(req.wallet, req.creator_profile, config_data, cfg)
    ix = build_create_race_market_ix(
        creator,
        market_id,
        treasury,
        req.question,
        req.outcomes,
        to_unix(req.closing_time),
        resolution_buffer=req.resolution_buffer_seconds,
        layer=layer,
        access_gate=AccessGate.WHITELIST if layer == Layer.PRIVATE else AccessGate.PUBLIC,
        creator_profile=profile,
        config=cfg,
    )
    logger.info("build_create_race_market market_id=%s outcomes=%s", market_id, len(req.outcomes))
    return _tx_response([ix], creator, req.recent_blockhash, {"race_market": race_market_pda(market_id, cfg)})


# ---------------------------------------------------------------------------
# quotes and pre-flight checks
# ---------------------------------------------------------------------------


def validate_bet_from_market(
    market_data: bytes,
    amount_sol: float,
    now: datetime,
    user_whitelisted: bool = False,
    config: Optional[ProtocolConfig] = None,
) -> BetValidation:
    cfg = config or DEFAULT_CONFIG
    market = parse_market_account(market_data, cfg)
    return validate_bet(
        sol_to_lamports(amount_sol),
        market["status"],
        from_unix(market["closing_time"]),
        market["access_gate"],
        now,
        user_whitelisted=user_whitelisted,
        layer=market["layer"],
        config=cfg.model_copy(update={"betting_freeze_seconds": market["betting_freeze_seconds_at_creation"]}),
    )


def quote_from_market(
    market_data: bytes, req: QuoteRequest, now: datetime, config: Optional[ProtocolConfig] = None
) -> BetQuote:
    """Quote a bet against live pools; validation failures come back as an invalid quote."""
    cfg = config or DEFAULT_CONFIG
    market = parse_market_account(market_data, cfg)
    fee_bps = market["platform_fee_bps_at_creation"]
    check = validate_bet_from_market(market_data, req.amount_sol, now, user_whitelisted=True, config=cfg)
    if not check.valid:
        return BetQuote(
            valid=False,
            error=check.error,
            warnings=check.warnings,
            side=req.side,
            bet_amount_sol=req.amount_sol,
            fee_bps=fee_bps,
            current_yes_percent=market["yes_percent"],
            current_no_percent=market["no_percent"],
        )
    return calculate_bet_quote(
        req.side,
        req.amount_sol,
        lamports_to_sol(market["yes_pool"]),
        lamports_to_sol(market["no_pool"]),
        fee_bps,
        warnings=check.warnings,
        config=cfg,
    )
