from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from .config import DEFAULT_CONFIG, ProtocolConfig, lamports_to_sol
from .constants import AccessGate, Layer, MarketOutcome, MarketStatus, layer_name, status_name
from .layouts import is_whitelist_required
from .models import BetValidation, BetValidationDetails, ClaimValidation

logger = logging.getLogger("baozi.rules")


def _reject(error: str, warnings, details: BetValidationDetails) -> BetValidation:
    logger.debug("bet_rejected reason=%s", error)
    return BetValidation(valid=False, error=error, warnings=warnings, details=details)


def validate_bet(
    amount_lamports: int,
    status: int,
    closing_time: datetime,
    access_gate: int,
    now: datetime,
    user_whitelisted: bool = False,
    layer: Optional[int] = None,
    is_paused: bool = False,
    config: Optional[ProtocolConfig] = None,
) -> BetValidation:
    """Check a bet before building its instruction.

    Checks run in order and the first failure is returned. Warnings gathered
    up to that point are kept on the result.
    """
    cfg = config or DEFAULT_CONFIG
    warnings = []
    details = BetValidationDetails()

    if amount_lamports < cfg.min_bet_lamports:
        details.amount_valid = False
        return _reject(f"Minimum bet is {lamports_to_sol(cfg.min_bet_lamports):g} SOL", warnings, details)
    if amount_lamports > cfg.max_bet_lamports:
        details.amount_valid = False
        return _reject(f"Maximum bet is {lamports_to_sol(cfg.max_bet_lamports):g} SOL", warnings, details)
    if amount_lamports > cfg.large_bet_warning_lamports:
        warnings.append("Large bet amount. Ensure you understand the odds before placing.")

    if status != MarketStatus.ACTIVE:
        details.market_state_valid = False
        return _reject(f"Market is {status_name(status)}, not accepting bets", warnings, details)
    if is_paused:
        details.market_state_valid = False
        return _reject("Market is paused", warnings, details)

    freeze_time = closing_time - timedelta(seconds=cfg.betting_freeze_seconds)
    if now >= closing_time:
        details.timing_valid = False
        return _reject("Betting has closed", warnings, details)
    if now >= freeze_time:
        details.timing_valid = False
        remaining = math.ceil((closing_time - now).total_seconds() / 60)
        return _reject(f"Betting is frozen ({remaining} minutes until close)", warnings, details)

    to_freeze = math.floor((freeze_time - now).total_seconds() / 60)
    if to_freeze < cfg.freeze_warning_minutes:
        warnings.append(f"Betting freezes in {to_freeze} minutes")

    if layer is None:
        gated = access_gate == AccessGate.WHITELIST
    else:
        gated = is_whitelist_required(layer, access_gate)
    if gated and not user_whitelisted:
        details.access_valid = False
        return _reject("You are not whitelisted for this private market", warnings, details)

    if layer == Layer.LAB:
        warnings.append(f"This is a {layer_name(layer)} market (community-created). DYOR.")

    return BetValidation(valid=True, warnings=warnings, details=details)


def validate_claim(
    status: int,
    outcome: int,
    side: str,
    amount_lamports: int,
    already_claimed: bool = False,
) -> ClaimValidation:
    if already_claimed:
        return ClaimValidation(valid=False, error="Position already claimed")

    if status not in (MarketStatus.RESOLVED, MarketStatus.CANCELLED):
        return ClaimValidation(valid=False, error=f"Market is {status_name(status)}, cannot claim yet")

    if status == MarketStatus.CANCELLED:
        # refund, not a win
        return ClaimValidation(valid=True, can_claim=True, is_winner=False)

    is_winner = (side == "Yes" and outcome == MarketOutcome.YES) or (side == "No" and outcome == MarketOutcome.NO)
    if not is_winner:
        return ClaimValidation(valid=False, error="Position is on losing side, nothing to claim")

    if amount_lamports <= 0:
        return ClaimValidation(valid=False, error="No position amount to claim", is_winner=True)

    return ClaimValidation(valid=True, can_claim=True, is_winner=True)
