from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .errors import InputError

Side = Literal["Yes", "No"]
MarketType = Literal["event", "measurement"]
Severity = Literal["CRITICAL", "ERROR", "WARNING"]


# ---------------------------------------------------------------------------
# transaction envelopes
# ---------------------------------------------------------------------------


class KeyMeta(BaseModel):
    pubkey: str
    is_signer: bool
    is_writable: bool


class InstructionMeta(BaseModel):
    program_id: str
    keys: List[KeyMeta]
    data: str


class TxResponse(BaseModel):
    message_b64: Optional[str] = None
    tx_v0_b64: Optional[str] = None
    recent_blockhash: Optional[str] = None
    instructions: List[InstructionMeta] = []
    # PDAs worth echoing back to the caller, e.g. {"position": "..."}
    accounts: Dict[str, str] = {}


# ---------------------------------------------------------------------------
# quotes
# ---------------------------------------------------------------------------


class BetQuote(BaseModel):
    valid: bool
    error: Optional[str] = None
    warnings: List[str] = []
    side: Side
    bet_amount_sol: float
    expected_payout_sol: float = 0
    potential_profit_sol: float = 0
    implied_odds: float = 0
    decimal_odds: float = 0
    fee_sol: float = 0
    fee_bps: int = 0
    new_yes_pool_sol: float = 0
    new_no_pool_sol: float = 0
    current_yes_percent: float = 50
    current_no_percent: float = 50
    new_yes_percent: float = 50
    new_no_percent: float = 50


class RaceQuote(BaseModel):
    valid: bool
    error: Optional[str] = None
    outcome_index: int
    outcome_label: str = ""
    bet_amount_sol: float
    expected_payout_sol: float = 0
    potential_profit_sol: float = 0
    fee_sol: float = 0
    implied_odds: float = 0
    decimal_odds: float = 0
    new_outcome_percent: float = 0


class ClaimEstimate(BaseModel):
    claim_type: Optional[Literal["winnings", "refund"]] = None
    winning_side: Optional[Side] = None
    stake_sol: float = 0
    estimated_payout_sol: float = 0
    fee_sol: float = 0


# ---------------------------------------------------------------------------
# bet / claim validation
# ---------------------------------------------------------------------------


class BetValidationDetails(BaseModel):
    amount_valid: bool = True
    market_state_valid: bool = True
    timing_valid: bool = True
    access_valid: bool = True


class BetValidation(BaseModel):
    valid: bool
    error: Optional[str] = None
    warnings: List[str] = []
    details: BetValidationDetails = Field(default_factory=BetValidationDetails)


class ClaimValidation(BaseModel):
    valid: bool
    error: Optional[str] = None
    can_claim: bool = False
    is_winner: bool = False


# ---------------------------------------------------------------------------
# market rules
# ---------------------------------------------------------------------------


class MarketTiming(BaseModel):
    buffer_hours: Optional[float] = None
    recommended_close: Optional[datetime] = None
    measurement_days: Optional[float] = None


class MarketTimingValidation(BaseModel):
    valid: bool
    # None when neither an event time nor a measurement start is given
    rule_type: Optional[Literal["A", "B"]] = None
    errors: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []
    timing: MarketTiming = Field(default_factory=MarketTiming)


class RuleViolation(BaseModel):
    rule: str
    description: str
    severity: Severity
    matches: List[str] = []


class ParimutuelValidation(BaseModel):
    valid: bool
    blocked: bool
    errors: List[str] = []
    warnings: List[str] = []
    rule_violations: List[RuleViolation] = []
    rules_checked: List[str] = []
    rule_set_version: str


class MarketValidation(BaseModel):
    valid: bool
    blocked: bool
    rule_type: Optional[Literal["A", "B"]] = None
    errors: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []
    rule_violations: List[RuleViolation] = []
    rules_checked: List[str] = []
    rule_set_version: str
    timing: MarketTiming = Field(default_factory=MarketTiming)


class QuestionFormat(BaseModel):
    valid: bool
    issues: List[str] = []


class RecommendedTimes(BaseModel):
    recommended_close: datetime
    latest_close: datetime
    earliest_close: datetime


class CreationComputed(BaseModel):
    rule_type: Literal["A", "B", "unknown"]
    buffer_hours: Optional[float] = None
    recommended_closing_time: Optional[datetime] = None
    creation_fee_sol: float
    platform_fee_bps: int
    estimated_rent_sol: float


class CreationValidation(BaseModel):
    valid: bool
    errors: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []
    computed: CreationComputed


class SimpleValidation(BaseModel):
    valid: bool
    errors: List[str] = []


class CreationFee(BaseModel):
    lamports: int
    sol: float


# ---------------------------------------------------------------------------
# handler requests
# ---------------------------------------------------------------------------


class MarketTimingParams(BaseModel):
    question: str
    closing_time: datetime
    market_type: Optional[MarketType] = None
    event_time: Optional[datetime] = None
    measurement_start: Optional[datetime] = None
    measurement_end: Optional[datetime] = None

    def require_aware(self, now: Optional[datetime] = None) -> None:
        """Raise InputError for any naive timestamp, ``now`` included."""
        stamps = [(name, value) for name, value in self if isinstance(value, datetime)]
        if now is not None:
            stamps.append(("now", now))
        for name, value in stamps:
            if value.tzinfo is None or value.utcoffset() is None:
                raise InputError(f"{name} must be timezone-aware")


class MarketParams(MarketTimingParams):
    layer: str = "lab"


class CreateMarketParams(MarketParams):
    resolution_time: datetime
    outcomes: Optional[List[str]] = None
    invite_hash: Optional[str] = None


class BetRequest(BaseModel):
    wallet: str
    market: str
    side: Side
    amount_sol: float
    affiliate_code: Optional[str] = None
    user_whitelisted: bool = True
    recent_blockhash: Optional[str] = None


class RaceBetRequest(BaseModel):
    wallet: str
    race_market: str
    outcome_index: int
    amount_sol: float
    affiliate_code: Optional[str] = None
    recent_blockhash: Optional[str] = None


class ClaimRequest(BaseModel):
    wallet: str
    market: str
    refund: bool = False
    recent_blockhash: Optional[str] = None


class BatchClaimItem(BaseModel):
    market: str
    market_id: int
    refund: bool = False


class BatchClaimRequest(BaseModel):
    wallet: str
    claims: List[BatchClaimItem]
    recent_blockhash: Optional[str] = None


class CreateLabMarketRequest(BaseModel):
    wallet: str
    question: str
    closing_time: datetime
    resolution_buffer_seconds: Optional[int] = None
    creator_profile: Optional[str] = None
    recent_blockhash: Optional[str] = None


class CreatePrivateMarketRequest(CreateLabMarketRequest):
    pass


class CreateRaceMarketRequest(CreateLabMarketRequest):
    outcomes: List[str]
    layer: str = "lab"


class QuoteRequest(BaseModel):
    side: Side
    amount_sol: float
