from __future__ import annotations

import re
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Sequence
from urllib.parse import parse_qs, urlsplit

from .config import DEFAULT_CONFIG, ProtocolConfig, lamports_to_sol
from .constants import Layer, parse_layer
from .models import CreateMarketParams, CreationComputed, CreationFee, CreationValidation, SimpleValidation

AFFILIATE_CODE_RE = re.compile(r"[A-Za-z0-9_]+")
REF_PARAM_RE = re.compile(r"[?&]ref=([A-Za-z0-9_]+)")
MIN_AFFILIATE_CODE_LEN = 3
MAX_AFFILIATE_CODE_LEN = 16


def _outcome_errors(outcomes: Sequence[str], cfg: ProtocolConfig, first_index: int) -> List[str]:
    errors: List[str] = []
    if len(outcomes) < cfg.min_outcomes:
        errors.append(f"Race markets require at least {cfg.min_outcomes} outcomes")
    if len(outcomes) > cfg.max_outcomes:
        errors.append(f"Race markets limited to {cfg.max_outcomes} outcomes (got {len(outcomes)})")
    for idx, outcome in enumerate(outcomes, start=first_index):
        if not outcome or not outcome.strip():
            errors.append(f"Outcome {idx} is empty")
        elif len(outcome) > cfg.max_outcome_label_length:
            errors.append(f"Outcome {idx} exceeds {cfg.max_outcome_label_length} characters")
    if len({o.strip().lower() for o in outcomes}) != len(outcomes):
        errors.append("Outcome labels must be unique")
    return errors


def validate_race_outcomes(outcomes: Sequence[str], config: Optional[ProtocolConfig] = None) -> SimpleValidation:
    """Outcome labels for a race market; numbering in messages starts at 1."""
    errors = _outcome_errors(outcomes, config or DEFAULT_CONFIG, first_index=1)
    return SimpleValidation(valid=not errors, errors=errors)


def get_creation_fee(layer, config: Optional[ProtocolConfig] = None) -> CreationFee:
    cfg = config or DEFAULT_CONFIG
    parse_layer(layer)
    # every layer currently pays the same flat fee
    return CreationFee(lamports=cfg.creation_fee_lamports, sol=lamports_to_sol(cfg.creation_fee_lamports))


def estimate_rent_lamports(outcome_count: Optional[int] = None, config: Optional[ProtocolConfig] = None) -> int:
    cfg = config or DEFAULT_CONFIG
    if outcome_count is None:
        return cfg.market_rent_lamports
    return cfg.race_rent_base_lamports + outcome_count * cfg.race_rent_per_outcome_lamports


def validate_market_creation(
    params: CreateMarketParams, now: datetime, config: Optional[ProtocolConfig] = None
) -> CreationValidation:
    cfg = config or DEFAULT_CONFIG
    params.require_aware(now)
    layer = parse_layer(params.layer)
    errors: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []

    if params.market_type == "event" or params.event_time is not None:
        rule_type = "A"
    elif params.market_type == "measurement" or params.measurement_start is not None:
        rule_type = "B"
    else:
        rule_type = "unknown"

    question = params.question
    if not question.strip():
        errors.append("Question is required")
    elif len(question) > cfg.max_question_length:
        errors.append(f"Question exceeds {cfg.max_question_length} characters (got {len(question)})")
    if not question.endswith("?"):
        warnings.append("Question should end with a question mark for clarity")

    if params.closing_time <= now:
        errors.append("Closing time must be in the future")
    if params.closing_time - now > timedelta(days=cfg.max_market_duration_days):
        errors.append(f"Market duration exceeds {cfg.max_market_duration_days} days")
    if params.resolution_time <= params.closing_time:
        errors.append("Resolution time must be after closing time")
    resolution_buffer = (params.resolution_time - params.closing_time).total_seconds()
    if resolution_buffer < cfg.min_resolution_buffer_seconds:
        errors.append(
            f"Resolution buffer too short: {resolution_buffer:g}s (min {cfg.min_resolution_buffer_seconds}s)"
        )

    buffer_hours: Optional[float] = None
    recommended: Optional[datetime] = None

    if rule_type == "A":
        if params.event_time is None:
            errors.append("Event-based markets require event_time")
        else:
            if params.event_time <= params.closing_time:
                errors.append("Event time must be after closing time")
            buffer_hours = (params.event_time - params.closing_time).total_seconds() / 3600
            if buffer_hours < cfg.min_event_buffer_hours:
                errors.append(
                    f"Event buffer too short: {buffer_hours:.1f}h. "
                    f"Minimum {cfg.min_event_buffer_hours:g}h required (Rule A)."
                )
                recommended = calculate_recommended_closing_time(params.event_time, config=cfg)
                suggestions.append(f"Recommended closing time: {recommended.isoformat()}")
            elif buffer_hours < cfg.warn_event_buffer_hours:
                warnings.append(f"Buffer is {buffer_hours:.1f}h. Recommend 18-24h for safety margin (Rule A).")
            if params.event_time <= now:
                errors.append("Event time must be in the future")

    if rule_type == "B":
        start = params.measurement_start
        if start is None:
            errors.append("Measurement-period markets require measurement_start")
        else:
            if params.closing_time >= start:
                overlap = (params.closing_time - start).total_seconds() / 3600
                errors.append(
                    f"INVALID: Betting closes {overlap:.1f}h AFTER measurement starts. "
                    "This allows information advantage! (Rule B)"
                )
                recommended = start - timedelta(hours=cfg.tight_measurement_buffer_hours)
                suggestions.append(f"Recommended closing time: {recommended.isoformat()}")
            if params.measurement_end is not None:
                if params.measurement_end <= start:
                    errors.append("Measurement end must be after measurement start")
                days = (params.measurement_end - start).total_seconds() / 86400
                if days > 7:
                    warnings.append(f"Long measurement period: {days:.0f} days. Prefer 2-7 days for better UX.")

    if params.outcomes is not None:
        errors.extend(_outcome_errors(params.outcomes, cfg, first_index=0))

    if layer == Layer.OFFICIAL:
        warnings.append("Official markets require admin approval")
    elif layer == Layer.PRIVATE and not params.invite_hash:
        warnings.append("Private markets can use invite_hash for restricted access")

    rent = estimate_rent_lamports(len(params.outcomes) if params.outcomes is not None else None, cfg)
    return CreationValidation(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        suggestions=suggestions,
        computed=CreationComputed(
            rule_type=rule_type,
            buffer_hours=buffer_hours,
            recommended_closing_time=recommended,
            creation_fee_sol=get_creation_fee(layer, cfg).sol,
            platform_fee_bps=cfg.platform_fee_bps(layer),
            estimated_rent_sol=lamports_to_sol(rent),
        ),
    )


def calculate_resolution_time(
    closing_time: datetime, market_type: str, event_time: Optional[datetime] = None
) -> datetime:
    if market_type == "event" and event_time is not None:
        return event_time + timedelta(hours=1)
    return closing_time + timedelta(days=1)


def calculate_recommended_closing_time(
    event_time: datetime, buffer_hours: Optional[float] = None, config: Optional[ProtocolConfig] = None
) -> datetime:
    cfg = config or DEFAULT_CONFIG
    hours = cfg.recommended_event_buffer_hours if buffer_hours is None else buffer_hours
    return event_time - timedelta(hours=hours)


def validate_affiliate_code(code: str) -> SimpleValidation:
    errors: List[str] = []
    if not MIN_AFFILIATE_CODE_LEN <= len(code) <= MAX_AFFILIATE_CODE_LEN:
        errors.append(f"Affiliate code must be {MIN_AFFILIATE_CODE_LEN}-{MAX_AFFILIATE_CODE_LEN} characters")
    if code and not AFFILIATE_CODE_RE.fullmatch(code):
        errors.append("Affiliate code may only contain letters, digits and underscores")
    return SimpleValidation(valid=not errors, errors=errors)


def validate_creator_profile(
    display_name: str, fee_bps: int, config: Optional[ProtocolConfig] = None
) -> SimpleValidation:
    cfg = config or DEFAULT_CONFIG
    errors: List[str] = []
    if len(display_name.encode("utf-8")) > cfg.max_display_name_bytes:
        errors.append(f"Display name must be {cfg.max_display_name_bytes} bytes or less")
    if fee_bps < 0 or fee_bps > cfg.max_creator_fee_bps:
        errors.append(f"Creator fee cannot exceed {cfg.max_creator_fee_bps} bps")
    return SimpleValidation(valid=not errors, errors=errors)


def generate_invite_hash() -> str:
    """32 random bytes, hex encoded, for invite-gated private markets."""
    return secrets.token_hex(32)


def get_invite_link(market: str, invite_hash: str, config: Optional[ProtocolConfig] = None) -> str:
    cfg = config or DEFAULT_CONFIG
    return f"{cfg.app_url}/market/{market}?invite={invite_hash}"


def format_affiliate_link(code: str, market: Optional[str] = None, config: Optional[ProtocolConfig] = None) -> str:
    cfg = config or DEFAULT_CONFIG
    if market:
        return f"{cfg.app_url}/market/{market}?ref={code}"
    return f"{cfg.app_url}?ref={code}"


def parse_affiliate_code(url: str) -> Optional[str]:
    """The ``ref`` query parameter of a share link, or None."""
    parts = urlsplit(url)
    if parts.scheme and parts.netloc:
        refs = parse_qs(parts.query).get("ref")
        return refs[0] if refs else None
    match = REF_PARAM_RE.search(url)
    return match.group(1) if match else None
