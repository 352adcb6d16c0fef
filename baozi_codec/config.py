from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings
from solders.pubkey import Pubkey

from .constants import Layer
from .errors import InputError

DEFAULT_PROGRAM_ID = "FWyTPzm5cfJwRKzfkscxozatSxF6Qu78JQovQUwKPruJ"
LAMPORTS_PER_SOL = 1_000_000_000


def load_pubkey(value: Optional[str], name: str = "pubkey") -> Pubkey:
    if not value:
        raise InputError(f"{name} must be set to a valid pubkey")
    try:
        return Pubkey.from_string(value)
    except Exception as exc:  # noqa: BLE001
        raise InputError(f"{name} is not a valid pubkey: {exc}") from exc


class ProtocolConfig(BaseModel):
    """Immutable protocol constants for one program deployment and rule-set version.

    Pass a different instance (``DEFAULT_CONFIG.model_copy(update=...)``) to run
    encoders and validators against another deployment side by side.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    program_id: Pubkey = Pubkey.from_string(DEFAULT_PROGRAM_ID)
    layout_version: str = "4.7.6"
    rule_set_version: str = "6.3"

    # fees
    official_fee_bps: int = 250
    lab_fee_bps: int = 300
    private_fee_bps: int = 200
    creation_fee_lamports: int = 10_000_000
    affiliate_fee_bps: int = 100
    creator_fee_bps: int = 50
    max_creator_fee_bps: int = 50
    bps_denominator: int = 10_000

    # bets
    min_bet_lamports: int = 10_000_000
    max_bet_lamports: int = 100_000_000_000
    large_bet_warning_lamports: int = 50 * LAMPORTS_PER_SOL
    betting_freeze_seconds: int = 300
    freeze_warning_minutes: int = 30

    # timing
    min_event_buffer_hours: float = 12
    warn_event_buffer_hours: float = 18
    recommended_event_buffer_hours: float = 24
    recommended_measurement_buffer_hours: float = 2
    tight_measurement_buffer_hours: float = 1
    max_recommended_buffer_hours: float = 48
    max_market_duration_days: int = 365
    min_resolution_buffer_seconds: int = 600
    max_resolution_buffer_seconds: int = 604_800
    default_resolution_buffer_seconds: int = 43_200
    default_auto_stop_buffer_seconds: int = 300
    dispute_window_seconds: int = 86_400

    # content
    min_question_length: int = 10
    max_question_length: int = 200
    min_outcomes: int = 2
    max_outcomes: int = 10
    max_outcome_label_length: int = 50
    max_display_name_bytes: int = 32
    council_capacity: int = 5

    # rent estimates
    market_rent_lamports: int = 5_000_000
    race_rent_base_lamports: int = 8_000_000
    race_rent_per_outcome_lamports: int = 500_000

    # share links
    app_url: str = "https://baozi.ooo"

    def platform_fee_bps(self, layer: Layer) -> int:
        return {
            Layer.OFFICIAL: self.official_fee_bps,
            Layer.LAB: self.lab_fee_bps,
            Layer.PRIVATE: self.private_fee_bps,
        }[Layer(layer)]


DEFAULT_CONFIG = ProtocolConfig()


class Settings(BaseSettings):
    baozi_program_id: Optional[str] = None
    rule_set_version: str = "6.3"
    layout_version: str = "4.7.6"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def protocol_config(self) -> ProtocolConfig:
        overrides = {
            "rule_set_version": self.rule_set_version,
            "layout_version": self.layout_version,
        }
        if self.baozi_program_id:
            overrides["program_id"] = load_pubkey(self.baozi_program_id, "BAOZI_PROGRAM_ID")
        return ProtocolConfig(**overrides)


def configure_logging(settings: Optional[Settings] = None) -> None:
    settings = settings or Settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level)


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def sol_to_lamports(sol: float) -> int:
    amount = Decimal(str(sol))
    if not amount.is_finite():
        raise InputError(f"amount must be a finite number of SOL, got {sol}")
    return int(amount * LAMPORTS_PER_SOL)
