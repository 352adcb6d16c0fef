"""Market timing and content rules for new markets.

Two layers of checks live here:

* timing rules: Rule A (event markets close well before the event) and Rule B
  (measurement markets close before measurement starts);
* parimutuel content rules: classification, data source, clear criteria and
  the denylists for subjective or creator-influenceable questions.

Content rules come from a versioned ``RuleSet`` table so that two rule-set
versions can be evaluated side by side. Every layer is evaluated, but only Lab
markets are blocked by a CRITICAL violation.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, NamedTuple, Optional, Tuple

from .config import DEFAULT_CONFIG, ProtocolConfig
from .constants import Layer, layer_name, parse_layer
from .errors import InputError
from .models import (
    MarketParams,
    MarketTiming,
    MarketTimingParams,
    MarketTimingValidation,
    MarketValidation,
    ParimutuelValidation,
    QuestionFormat,
    RecommendedTimes,
    RuleViolation,
)

logger = logging.getLogger("baozi.rules")

CRITICAL = "CRITICAL"
WARNING = "WARNING"


class DenylistEntry(NamedTuple):
    pattern: str
    severity: str
    message: str


class RuleSet(NamedTuple):
    version: str
    subjective: Tuple[DenylistEntry, ...]
    manipulation: Tuple[DenylistEntry, ...]
    approved_sources: Dict[str, Tuple[str, ...]]
    missing_source_severity: str


def _deny(message: str, *patterns: str) -> Tuple[DenylistEntry, ...]:
    return tuple(DenylistEntry(p, CRITICAL, message) for p in patterns)


SUBJECTIVE_MESSAGE = (
    "Markets must have outcomes that can be objectively verified by a third party using public records. "
    "Avoid questions about AI agents, personal achievements, or vague success metrics."
)
MANIPULATION_MESSAGE = (
    "Market creators cannot create markets about outcomes they could directly influence. "
    "Use markets about public events, regulated competitions, or natural phenomena instead."
)

RULE_SETS: Dict[str, RuleSet] = {
    "6.2": RuleSet(
        version="6.2",
        subjective=(),
        manipulation=(),
        approved_sources={},
        missing_source_severity=WARNING,
    ),
    "6.3": RuleSet(
        version="6.3",
        subjective=_deny(
            SUBJECTIVE_MESSAGE,
            "ai agent",
            "an agent",
            "autonomously",
            "become popular",
            "go viral",
            "be successful",
            "perform well",
            "be the best",
            "breakthrough",
            "revolutionary",
            "will i ",
            "will we ",
            "will my ",
            "will our ",
        ),
        manipulation=_deny(
            MANIPULATION_MESSAGE,
            "will someone",
            "will anyone",
            "will a person",
            "will a user",
            "purchase proxies",
            "buy proxies",
            "x402 payment",
            "using credits",
        ),
        approved_sources={
            "crypto": ("coingecko", "coinmarketcap", "binance", "coinbase", "tradingview"),
            "sports": ("espn", "ufc", "uefa", "fifa", "nba", "nfl", "mlb", "nhl", "atp", "wta"),
            "weather": ("nws", "jma", "met office", "weather.gov", "accuweather"),
            "politics": ("ap news", "reuters", "associated press", "official government"),
            "finance": ("sec", "nasdaq", "nyse", "yahoo finance", "bloomberg"),
            "social": ("twitter/x official", "verified account"),
        },
        missing_source_severity=CRITICAL,
    ),
}

# Keywords that name or imply a resolution source in every rule-set version.
SOURCE_HINTS = (
    "source:",
    "coingecko",
    "coinmarketcap",
    "official",
    "nws",
    "jma",
    "ufc",
    "uefa",
    "fifa",
    "nba",
    "nfl",
    "mlb",
    " win ",
    " defeat ",
    " advance ",
    "championship",
    "election",
)

IMPLIED_SOURCE_PATTERNS = (
    re.compile(r"\b(btc|eth|sol|bitcoin|ethereum|solana)\b", re.I),
    re.compile(r"\b(ufc|nba|nfl|mlb|nhl|champions league|world cup|super bowl)\b", re.I),
    re.compile(r"\b(tokyo|london|new york|los angeles|paris|snow|rain|temperature)\b", re.I),
    re.compile(r"\b(election|president|congress|parliament|vote)\b", re.I),
)

NUMERIC_THRESHOLD_PATTERNS = (
    re.compile(r"\$[\d,]+"),
    re.compile(r"\d+%"),
    re.compile(r"above|below|over|under|at least|more than|less than", re.I),
)

BINARY_OUTCOME_PATTERNS = (
    re.compile(r"will .+ (win|lose|defeat|advance|qualify|score|achieve)", re.I),
    re.compile(r"will .+ (snow|rain|happen|occur)", re.I),
)

AMBIGUOUS_TERMS = ("maybe", "probably", "might", "could possibly")


def get_rule_set(version: Optional[str] = None, config: Optional[ProtocolConfig] = None) -> RuleSet:
    version = version or (config or DEFAULT_CONFIG).rule_set_version
    rule_set = RULE_SETS.get(version)
    if rule_set is None:
        raise InputError(f"Unknown rule set version {version}")
    return rule_set


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def _iso(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def _market_type(params: MarketTimingParams) -> Optional[str]:
    if params.market_type:
        return params.market_type
    if params.event_time is not None:
        return "event"
    if params.measurement_start is not None:
        return "measurement"
    return None


# ---------------------------------------------------------------------------
# timing
# ---------------------------------------------------------------------------


def validate_market_timing(
    params: MarketTimingParams, now: datetime, config: Optional[ProtocolConfig] = None
) -> MarketTimingValidation:
    cfg = config or DEFAULT_CONFIG
    params.require_aware(now)
    errors: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []
    timing = MarketTiming()
    question = params.question

    if len(question) > cfg.max_question_length:
        errors.append(f"Question too long: {len(question)} chars (max {cfg.max_question_length})")
    if len(question) < cfg.min_question_length:
        warnings.append(f"Question may be too short: {len(question)} chars")

    if params.closing_time <= now:
        errors.append("Closing time must be in the future")
    if params.closing_time > now + timedelta(days=cfg.max_market_duration_days):
        errors.append(f"Closing time too far in future (max {cfg.max_market_duration_days} days)")

    market_type = _market_type(params)

    if market_type == "event":
        if params.event_time is None:
            errors.append("Event-based markets require event_time")
            return MarketTimingValidation(valid=False, rule_type="A", errors=errors, warnings=warnings)

        if params.event_time <= params.closing_time:
            errors.append("Event time must be after closing time")

        buffer_hours = _hours(params.event_time - params.closing_time)
        timing.buffer_hours = round(buffer_hours, 1)
        if buffer_hours < cfg.min_event_buffer_hours:
            errors.append(
                f"Buffer too short: {timing.buffer_hours}h. "
                f"Minimum {cfg.min_event_buffer_hours:g}h required between betting close and event."
            )
        elif buffer_hours < cfg.warn_event_buffer_hours:
            warnings.append(
                f"Buffer is {timing.buffer_hours}h. "
                f"Recommend {cfg.recommended_event_buffer_hours:g}h for safety margin."
            )

        recommended = params.event_time - timedelta(hours=cfg.recommended_event_buffer_hours)
        timing.recommended_close = recommended
        if recommended > now and params.closing_time > recommended:
            suggestions.append(
                f"Consider closing betting at {_iso(recommended)} "
                f"({cfg.recommended_event_buffer_hours:g}h before event)"
            )

        if "will" in question.lower() and "?" not in question:
            suggestions.append("Consider ending your question with a question mark for clarity")

        return MarketTimingValidation(
            valid=not errors, rule_type="A", errors=errors, warnings=warnings, suggestions=suggestions, timing=timing
        )

    if market_type == "measurement":
        start = params.measurement_start
        if start is None:
            errors.append("Measurement-period markets require measurement_start")
            return MarketTimingValidation(valid=False, rule_type="B", errors=errors, warnings=warnings)

        if params.closing_time >= start:
            overlap = round(_hours(params.closing_time - start), 1)
            errors.append(
                f"INVALID: Betting closes {overlap}h AFTER measurement starts. "
                "This allows information advantage! "
                "Betting must close BEFORE measurement period begins."
            )

        buffer_hours = _hours(start - params.closing_time)
        timing.buffer_hours = round(buffer_hours, 1)
        if 0 < buffer_hours < cfg.tight_measurement_buffer_hours:
            warnings.append(
                f"Very tight buffer ({timing.buffer_hours}h) between betting close and measurement start. "
                "Consider adding more time for late bettors."
            )

        if params.measurement_end is not None:
            if params.measurement_end <= start:
                errors.append("Measurement end must be after measurement start")
            days = (params.measurement_end - start).total_seconds() / 86400
            timing.measurement_days = round(days, 1)
            if days > 30:
                warnings.append(
                    f"Very long measurement period: {timing.measurement_days} days. "
                    "Consider shorter periods (2-7 days) for better user experience."
                )
            elif days > 7:
                warnings.append(
                    f"Long measurement period: {timing.measurement_days} days. "
                    "Prefer 2-7 days for optimal engagement."
                )
            elif days < 1:
                suggestions.append(
                    f"Short measurement period ({round(days * 24)}h). "
                    "Ensure resolution can be determined within this timeframe."
                )

        recommended = start - timedelta(hours=cfg.recommended_measurement_buffer_hours)
        timing.recommended_close = recommended
        if recommended > now and params.closing_time > recommended:
            suggestions.append(
                f"Consider closing betting at {_iso(recommended)} "
                f"({cfg.recommended_measurement_buffer_hours:g}h before measurement period starts)"
            )

        return MarketTimingValidation(
            valid=not errors, rule_type="B", errors=errors, warnings=warnings, suggestions=suggestions, timing=timing
        )

    errors.append(f"Unknown market type: {params.market_type}")
    return MarketTimingValidation(valid=False, rule_type=None, errors=errors, warnings=warnings)


def generate_timing_suggestions(
    params: MarketTimingParams, now: datetime, config: Optional[ProtocolConfig] = None
) -> List[str]:
    cfg = config or DEFAULT_CONFIG
    suggestions: List[str] = []
    params.require_aware(now)
    market_type = _market_type(params)

    if market_type == "event" and params.event_time is not None:
        optimal = params.event_time - timedelta(hours=cfg.recommended_event_buffer_hours)
        if optimal > now:
            suggestions.append(f"Optimal betting close: {_iso(optimal)}")
        if "?" not in params.question:
            suggestions.append('End your question with "?" for clarity')

    if market_type == "measurement" and params.measurement_start is not None:
        optimal = params.measurement_start - timedelta(hours=cfg.recommended_measurement_buffer_hours)
        if optimal > now:
            suggestions.append(f"Optimal betting close: {_iso(optimal)}")

    return suggestions


def validate_question_format(question: str, config: Optional[ProtocolConfig] = None) -> QuestionFormat:
    cfg = config or DEFAULT_CONFIG
    issues: List[str] = []
    lowered = question.lower()

    if len(question) < cfg.min_question_length:
        issues.append(f"Question too short (min {cfg.min_question_length} chars)")
    if len(question) > cfg.max_question_length:
        issues.append(f"Question too long (max {cfg.max_question_length} chars)")
    if not question.strip():
        issues.append("Question cannot be empty")
    if "?" not in question and not lowered.startswith("will "):
        issues.append("Consider phrasing as a yes/no question")
    for term in AMBIGUOUS_TERMS:
        if term in lowered:
            issues.append(f'Avoid ambiguous term: "{term}"')

    return QuestionFormat(valid=not issues, issues=issues)


def calculate_recommended_times(
    start: datetime, market_type: str, config: Optional[ProtocolConfig] = None
) -> RecommendedTimes:
    """Closing-time window for an event time or measurement start."""
    cfg = config or DEFAULT_CONFIG
    if market_type == "event":
        recommended, minimum = cfg.recommended_event_buffer_hours, cfg.min_event_buffer_hours
    elif market_type == "measurement":
        recommended, minimum = cfg.recommended_measurement_buffer_hours, cfg.tight_measurement_buffer_hours
    else:
        raise InputError(f"Unknown market type: {market_type}")
    return RecommendedTimes(
        recommended_close=start - timedelta(hours=recommended),
        latest_close=start - timedelta(hours=minimum),
        earliest_close=start - timedelta(hours=cfg.max_recommended_buffer_hours),
    )


# ---------------------------------------------------------------------------
# parimutuel content rules
# ---------------------------------------------------------------------------


def _severity_rank(severity: str) -> int:
    return {WARNING: 0, "ERROR": 1, CRITICAL: 2}[severity]


def _matches(entries: Tuple[DenylistEntry, ...], lowered: str) -> List[DenylistEntry]:
    return [entry for entry in entries if entry.pattern.lower() in lowered]


def _quoted(terms: List[str]) -> str:
    return '"' + '", "'.join(terms) + '"'


def has_data_source(question: str) -> bool:
    lowered = question.lower()
    return any(hint in lowered for hint in SOURCE_HINTS)


def has_implied_source(question: str) -> bool:
    return any(pattern.search(question) for pattern in IMPLIED_SOURCE_PATTERNS)


def validate_parimutuel_rules(
    params: MarketParams, config: Optional[ProtocolConfig] = None, rule_set: Optional[RuleSet] = None
) -> ParimutuelValidation:
    cfg = config or DEFAULT_CONFIG
    params.require_aware()
    rules = rule_set or get_rule_set(config=cfg)
    layer = parse_layer(params.layer)
    question = params.question
    lowered = question.lower()

    errors: List[str] = []
    warnings: List[str] = []
    violations: List[RuleViolation] = []
    checked: List[str] = []

    checked.append("Market Type Classification")
    # classified by the times actually present; a declared type without its time is unclassified
    is_event = params.event_time is not None and params.market_type != "measurement"
    is_measurement = params.measurement_start is not None and params.market_type != "event"
    if not is_event and not is_measurement:
        violations.append(
            RuleViolation(
                rule="Market Classification",
                description=(
                    f"{layer_name(layer)} markets MUST specify either event_time (Rule A) or measurement_start "
                    "(Rule B). Without this, the market cannot be validated for fair betting windows."
                ),
                severity=CRITICAL,
            )
        )
        errors.append(
            "BLOCKED: Market must be classified as event-based (with event_time) "
            "or measurement-based (with measurement_start)"
        )

    if is_event and params.event_time is not None:
        checked.append("Rule A: Event Buffer")
        buffer_hours = _hours(params.event_time - params.closing_time)
        if buffer_hours < cfg.min_event_buffer_hours:
            violations.append(
                RuleViolation(
                    rule="Rule A",
                    description=(
                        f"Event buffer is {buffer_hours:.1f}h but minimum is {cfg.min_event_buffer_hours:g}h. "
                        f"Betting must close at least {cfg.min_event_buffer_hours:g} hours BEFORE the event "
                        "to prevent information advantage."
                    ),
                    severity=CRITICAL,
                )
            )
            errors.append(
                f"BLOCKED: Betting must close {cfg.min_event_buffer_hours:g}+ hours before event "
                f"(currently {buffer_hours:.1f}h)"
            )
        elif buffer_hours < cfg.warn_event_buffer_hours:
            warnings.append(f"Event buffer is {buffer_hours:.1f}h. Recommend 18-24h for safety margin.")

    if is_measurement and params.measurement_start is not None:
        checked.append("Rule B: Measurement Period")
        if params.closing_time >= params.measurement_start:
            overlap = _hours(params.closing_time - params.measurement_start)
            violations.append(
                RuleViolation(
                    rule="Rule B",
                    description=(
                        f"CRITICAL VIOLATION: Betting closes {overlap:.1f}h AFTER measurement starts! "
                        "This allows bettors to bet with foreknowledge of the outcome. "
                        "Betting MUST close BEFORE the measurement period begins."
                    ),
                    severity=CRITICAL,
                )
            )
            errors.append(
                f"BLOCKED: Betting must close BEFORE measurement starts (currently closes {overlap:.1f}h AFTER)"
            )

    checked.append("Verifiable Data Source")
    named_source = has_data_source(question)
    if not named_source:
        warnings.append(
            'Recommended: Include data source in question (e.g., "(Source: CoinGecko)" or "(Official: UEFA)"). '
            "This ensures objective resolution."
        )

    checked.append("Clear Resolution Criteria")
    numeric = any(p.search(question) for p in NUMERIC_THRESHOLD_PATTERNS)
    binary = any(p.search(question) for p in BINARY_OUTCOME_PATTERNS)
    if not numeric and not binary:
        warnings.append(
            "Question should have clear numeric threshold or binary outcome. "
            'Example: "above $X", "at least Y goals", "will Team A win"'
        )

    if rules.subjective:
        checked.append("Objective Verifiability")
        found = _matches(rules.subjective, lowered)
        if found:
            terms = [entry.pattern.strip() for entry in found]
            violations.append(
                RuleViolation(
                    rule="Subjective Outcome",
                    description=(
                        f"BLOCKED: Question contains unverifiable/subjective terms: {_quoted(terms)}. "
                        + found[0].message
                    ),
                    severity=max((e.severity for e in found), key=_severity_rank),
                    matches=terms,
                )
            )
            errors.append(f"BLOCKED: Unverifiable outcome detected. Terms: {', '.join(terms)}")

    if rules.manipulation:
        checked.append("Manipulation Prevention")
        found = _matches(rules.manipulation, lowered)
        if found:
            terms = [entry.pattern.strip() for entry in found]
            violations.append(
                RuleViolation(
                    rule="Manipulation Risk",
                    description=(
                        f"BLOCKED: Question has manipulation risk with terms: {_quoted(terms)}. "
                        + found[0].message
                    ),
                    severity=max((e.severity for e in found), key=_severity_rank),
                    matches=terms,
                )
            )
            errors.append(f"BLOCKED: Manipulation risk detected. Terms: {', '.join(terms)}")

    if rules.approved_sources:
        checked.append("Approved Data Source")
        approved = [source for group in rules.approved_sources.values() for source in group]
        has_approved = any(source in lowered for source in approved)
        if not has_approved and not has_implied_source(question) and not named_source:
            violations.append(
                RuleViolation(
                    rule="Data Source",
                    description=(
                        "BLOCKED: No verifiable data source specified or implied. "
                        'Markets MUST include a data source like "(Source: CoinGecko)", "(Official: ESPN)", etc. '
                        f"Approved sources: {', '.join(approved[:10])}..."
                    ),
                    severity=rules.missing_source_severity,
                )
            )
            if rules.missing_source_severity == CRITICAL:
                errors.append("BLOCKED: Must specify verifiable data source for resolution")

    critical = any(v.severity == CRITICAL for v in violations)
    blocked = layer == Layer.LAB and critical
    if blocked:
        logger.info(
            "market_blocked rule_set=%s violations=%s",
            rules.version,
            ",".join(v.rule for v in violations if v.severity == CRITICAL),
        )

    return ParimutuelValidation(
        valid=not errors,
        blocked=blocked,
        errors=errors,
        warnings=warnings,
        rule_violations=violations,
        rules_checked=checked,
        rule_set_version=rules.version,
    )


def validate_market(
    params: MarketParams,
    now: datetime,
    config: Optional[ProtocolConfig] = None,
    rule_set: Optional[RuleSet] = None,
) -> MarketValidation:
    """Timing rules plus parimutuel content rules in one result.

    ``blocked`` comes from the content rules only. Timing errors still make the
    result invalid and callers must not build a creation transaction for it.
    """
    timing = validate_market_timing(params, now, config)
    rules = validate_parimutuel_rules(params, config, rule_set)
    errors = timing.errors + [e for e in rules.errors if e not in timing.errors]
    return MarketValidation(
        valid=not errors,
        blocked=rules.blocked,
        rule_type=timing.rule_type,
        errors=errors,
        warnings=timing.warnings + rules.warnings,
        suggestions=timing.suggestions,
        rule_violations=rules.rule_violations,
        rules_checked=rules.rules_checked,
        rule_set_version=rules.rule_set_version,
        timing=timing.timing,
    )
