"""Parimutuel quote math.

All functions work in SOL floats and never touch the network. The payout on a
winning side is ``stake + stake / side_pool * opposing_pool`` measured against
the pools *after* the stake is added; the platform fee is taken from the profit
part only, so a bet into an empty opposing pool pays back exactly the stake.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from .config import DEFAULT_CONFIG, ProtocolConfig
from .constants import MarketOutcome, MarketStatus
from .models import BetQuote, ClaimEstimate, RaceQuote


def round4(value: float) -> float:
    return round(value, 4)


def round2(value: float) -> float:
    return round(value, 2)


def _percent(part: float, total: float) -> float:
    return part / total * 100 if total > 0 else 50.0


def parimutuel_payout(stake: float, side_pool: float, total_pool: float, fee_bps: int, config: Optional[ProtocolConfig] = None):
    """Return ``(net_payout, fee)`` for ``stake`` already included in ``side_pool``/``total_pool``."""
    cfg = config or DEFAULT_CONFIG
    if side_pool <= 0 or stake <= 0:
        return 0.0, 0.0
    gross = stake / side_pool * total_pool
    profit = gross - stake
    fee = profit * fee_bps / cfg.bps_denominator if profit > 0 else 0.0
    return gross - fee, fee


def calculate_bet_quote(
    side: str,
    amount_sol: float,
    yes_pool_sol: float,
    no_pool_sol: float,
    fee_bps: int,
    warnings: Optional[List[str]] = None,
    config: Optional[ProtocolConfig] = None,
) -> BetQuote:
    total = yes_pool_sol + no_pool_sol
    new_yes = yes_pool_sol + amount_sol if side == "Yes" else yes_pool_sol
    new_no = no_pool_sol + amount_sol if side == "No" else no_pool_sol
    new_total = new_yes + new_no
    side_pool = new_yes if side == "Yes" else new_no

    payout, fee = parimutuel_payout(amount_sol, side_pool, new_total, fee_bps, config)
    implied = side_pool / new_total * 100 if new_total > 0 else 50.0
    decimal_odds = new_total / side_pool if side_pool > 0 else 2.0

    return BetQuote(
        valid=True,
        warnings=list(warnings or []),
        side=side,
        bet_amount_sol=round4(amount_sol),
        expected_payout_sol=round4(payout),
        potential_profit_sol=round4(payout - amount_sol),
        implied_odds=round2(implied),
        decimal_odds=round2(decimal_odds),
        fee_sol=round4(fee),
        fee_bps=fee_bps,
        new_yes_pool_sol=round4(new_yes),
        new_no_pool_sol=round4(new_no),
        current_yes_percent=round2(_percent(yes_pool_sol, total)),
        current_no_percent=round2(_percent(no_pool_sol, total)),
        new_yes_percent=round2(_percent(new_yes, new_total)),
        new_no_percent=round2(_percent(new_no, new_total)),
    )


def calculate_race_quote(
    outcome_index: int,
    amount_sol: float,
    outcome_pools_sol: Sequence[float],
    fee_bps: int,
    labels: Optional[Sequence[str]] = None,
    config: Optional[ProtocolConfig] = None,
) -> RaceQuote:
    count = len(outcome_pools_sol)
    if outcome_index < 0 or outcome_index >= count:
        return RaceQuote(
            valid=False,
            error=f"Invalid outcome index. Must be 0-{count - 1}",
            outcome_index=outcome_index,
            bet_amount_sol=amount_sol,
        )

    new_pool = outcome_pools_sol[outcome_index] + amount_sol
    new_total = sum(outcome_pools_sol) + amount_sol
    payout, fee = parimutuel_payout(amount_sol, new_pool, new_total, fee_bps, config)
    share = new_pool / new_total * 100 if new_total > 0 else 0.0

    return RaceQuote(
        valid=True,
        outcome_index=outcome_index,
        outcome_label=labels[outcome_index] if labels else "",
        bet_amount_sol=round4(amount_sol),
        expected_payout_sol=round4(payout),
        potential_profit_sol=round4(payout - amount_sol),
        fee_sol=round4(fee),
        implied_odds=round2(share),
        decimal_odds=round2(new_total / new_pool) if new_pool > 0 else 0,
        new_outcome_percent=round2(share),
    )


def estimate_claim_amount(
    status: int,
    winning_outcome: int,
    yes_amount_sol: float,
    no_amount_sol: float,
    frozen_yes_pool_sol: float,
    frozen_no_pool_sol: float,
    fee_bps: int,
    config: Optional[ProtocolConfig] = None,
) -> ClaimEstimate:
    """Estimate what a position can claim, using pool sizes frozen at market close.

    Cancelled markets and Invalid outcomes refund the full stake; losing
    positions and unresolved markets claim nothing.
    """
    stake = yes_amount_sol + no_amount_sol

    if status == MarketStatus.CANCELLED or (
        status == MarketStatus.RESOLVED and winning_outcome == MarketOutcome.INVALID
    ):
        return ClaimEstimate(
            claim_type="refund", stake_sol=round4(stake), estimated_payout_sol=round4(stake)
        )
    if status != MarketStatus.RESOLVED:
        return ClaimEstimate(stake_sol=round4(stake))

    total = frozen_yes_pool_sol + frozen_no_pool_sol
    if winning_outcome == MarketOutcome.YES and yes_amount_sol > 0:
        payout, fee = parimutuel_payout(yes_amount_sol, frozen_yes_pool_sol, total, fee_bps, config)
        side = "Yes"
    elif winning_outcome == MarketOutcome.NO and no_amount_sol > 0:
        payout, fee = parimutuel_payout(no_amount_sol, frozen_no_pool_sol, total, fee_bps, config)
        side = "No"
    else:
        return ClaimEstimate(stake_sol=round4(stake))

    return ClaimEstimate(
        claim_type="winnings",
        winning_side=side,
        stake_sol=round4(stake),
        estimated_payout_sol=round4(payout),
        fee_sol=round4(fee),
    )
