"""Positional readers for program-owned account data.

Each account type is declared once as an ordered list of fields. The same
declaration drives three things: the cursor walk that pulls a single field
out of raw bytes, a full decode, and ``encode`` for building account bytes.
Offsets are tied to one on-chain program version; a new program layout gets
a new entry in the version tables below rather than an edit in place.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, NamedTuple, NoReturn, Optional, Tuple

from borsh_construct import Bool, CStruct, I64, Option, String, U16, U64, U8
from construct import Adapter, Bytes, ConstructError
from solders.pubkey import Pubkey

from .config import DEFAULT_CONFIG, ProtocolConfig, lamports_to_sol
from .constants import (
    AFFILIATE_DISCRIMINATOR,
    AccessGate,
    DISPUTE_META_DISCRIMINATOR,
    Layer,
    MARKET_DISCRIMINATOR,
    MarketStatus,
    RACE_MARKET_DISCRIMINATOR,
    REFERRED_USER_DISCRIMINATOR,
    USER_POSITION_DISCRIMINATOR,
    layer_name,
    status_name,
)
from .errors import InputError, LayoutDecodeError

logger = logging.getLogger("baozi.layouts")

DISCRIMINATOR_LEN = 8

FIXED = "fixed"
STRING = "string"
OPTION = "option"


class PubkeyAdapter(Adapter):
    def _decode(self, obj, context, path):
        return Pubkey.from_bytes(obj)

    def _encode(self, obj, context, path):
        return bytes(obj)


PUBKEY = PubkeyAdapter(Bytes(32))


class Field(NamedTuple):
    name: str
    con: object
    kind: str = FIXED
    # fixed width, or width of the payload behind an Option flag
    width: int = 0


def fixed(name: str, con, width: int) -> Field:
    return Field(name, con, FIXED, width)


def string(name: str) -> Field:
    return Field(name, String, STRING, 0)


def option(name: str, inner, width: int) -> Field:
    return Field(name, Option(inner), OPTION, width)


class AccountLayout:
    def __init__(self, name: str, discriminator: Optional[bytes], fields: Iterable[Field], min_size: int = 0):
        self.name = name
        self.discriminator = discriminator
        self.fields: Tuple[Field, ...] = tuple(fields)
        self.min_size = min_size
        self.struct = CStruct(*[f.name / f.con for f in self.fields])
        self._by_name = {f.name: f for f in self.fields}

    def check(self, data: bytes) -> None:
        if len(data) < max(DISCRIMINATOR_LEN, self.min_size):
            self._fail(f"{self.name} account data too short: {len(data)} bytes")
        if self.discriminator is not None and bytes(data[:DISCRIMINATOR_LEN]) != self.discriminator:
            self._fail(
                f"{self.name} discriminator mismatch",
                expected=self.discriminator,
                actual=bytes(data[:DISCRIMINATOR_LEN]),
            )

    def _fail(self, message: str, expected: Optional[bytes] = None, actual: Optional[bytes] = None) -> NoReturn:
        logger.warning("layout_decode_failed account=%s reason=%s", self.name, message)
        raise LayoutDecodeError(message, expected=expected, actual=actual)

    def _size_at(self, data: bytes, o: int, field: Field) -> int:
        if field.kind == STRING:
            if o + 4 > len(data):
                self._fail(f"{self.name}.{field.name} length prefix out of range at offset {o}")
            return 4 + int.from_bytes(data[o : o + 4], "little")
        if field.kind == OPTION:
            if o >= len(data):
                self._fail(f"{self.name}.{field.name} option flag out of range at offset {o}")
            flag = data[o]
            if flag not in (0, 1):
                self._fail(f"{self.name}.{field.name} has invalid option flag {flag}")
            return 1 + (field.width if flag == 1 else 0)
        return field.width

    def offset_of(self, data: bytes, name: str) -> int:
        """Byte offset of ``name`` inside ``data``, walking variable-length fields before it."""
        if name not in self._by_name:
            raise InputError(f"{self.name} has no field {name}")
        self.check(data)
        o = DISCRIMINATOR_LEN
        for field in self.fields:
            if field.name == name:
                return o
            o += self._size_at(data, o, field)
        return o

    def read_fields(self, data: bytes, names: Iterable[str]) -> Dict[str, object]:
        wanted = set(names)
        unknown = wanted - set(self._by_name)
        if unknown:
            raise InputError(f"{self.name} has no field(s) {sorted(unknown)}")
        self.check(data)
        out: Dict[str, object] = {}
        o = DISCRIMINATOR_LEN
        for field in self.fields:
            if not wanted:
                break
            size = self._size_at(data, o, field)
            if field.name in wanted:
                if o + size > len(data):
                    self._fail(f"{self.name}.{field.name} out of range at offset {o}")
                try:
                    out[field.name] = field.con.parse(bytes(data[o : o + size]))
                except ConstructError as exc:
                    self._fail(f"{self.name}.{field.name} unreadable: {exc}")
                wanted.discard(field.name)
            o += size
        return out

    def read(self, data: bytes, name: str):
        return self.read_fields(data, [name])[name]

    def decode(self, data: bytes) -> Dict[str, object]:
        self.check(data)
        try:
            parsed = self.struct.parse(bytes(data[DISCRIMINATOR_LEN:]))
        except ConstructError as exc:
            self._fail(f"{self.name} unreadable: {exc}")
        return {f.name: parsed[f.name] for f in self.fields}

    def encode(self, values: Dict[str, object]) -> bytes:
        return (self.discriminator or bytes(DISCRIMINATOR_LEN)) + self.struct.build(values)


MARKET_LAYOUTS: Dict[str, AccountLayout] = {
    "4.7.6": AccountLayout(
        "Market",
        MARKET_DISCRIMINATOR,
        [
            fixed("market_id", U64, 8),
            string("question"),
            fixed("closing_time", I64, 8),
            fixed("resolution_time", I64, 8),
            fixed("auto_stop_buffer", I64, 8),
            fixed("yes_pool", U64, 8),
            fixed("no_pool", U64, 8),
            fixed("snapshot_yes_pool", U64, 8),
            fixed("snapshot_no_pool", U64, 8),
            fixed("status", U8, 1),
            option("winning_outcome", Bool, 1),
            fixed("currency_type", U8, 1),
            fixed("reserved_usdc_vault", Bytes(33), 33),
            fixed("creator_bond", U64, 8),
            fixed("total_claimed", U64, 8),
            fixed("platform_fee_collected", U64, 8),
            fixed("last_bet_time", I64, 8),
            fixed("bump", U8, 1),
            fixed("layer", U8, 1),
            fixed("resolution_mode", U8, 1),
            fixed("access_gate", U8, 1),
            fixed("creator", PUBKEY, 32),
            option("oracle_host", PUBKEY, 32),
            fixed("council", PUBKEY[5], 160),
            fixed("council_size", U8, 1),
            fixed("council_votes_yes", U8, 1),
            fixed("council_votes_no", U8, 1),
            fixed("council_threshold", U8, 1),
            fixed("total_affiliate_fees", U64, 8),
            option("invite_hash", Bytes(32), 32),
            fixed("creator_fee_bps", U16, 2),
            fixed("total_creator_fees", U64, 8),
            option("creator_profile", PUBKEY, 32),
            fixed("platform_fee_bps_at_creation", U16, 2),
            fixed("affiliate_fee_bps_at_creation", U16, 2),
            fixed("betting_freeze_seconds_at_creation", I64, 8),
            fixed("has_bets", Bool, 1),
        ],
    ),
}

RACE_MARKET_LAYOUTS: Dict[str, AccountLayout] = {
    "4.7.6": AccountLayout(
        "RaceMarket",
        RACE_MARKET_DISCRIMINATOR,
        [
            fixed("market_id", U64, 8),
            string("question"),
            fixed("closing_time", I64, 8),
            fixed("resolution_time", I64, 8),
            fixed("auto_stop_buffer", I64, 8),
            fixed("outcome_count", U8, 1),
            fixed("outcome_labels", Bytes(32)[10], 320),
            fixed("outcome_pools", U64[10], 80),
            fixed("total_pool", U64, 8),
            fixed("snapshot_pools", U64[10], 80),
            fixed("snapshot_total", U64, 8),
            fixed("status", U8, 1),
            option("winning_outcome", U8, 1),
            fixed("currency_type", U8, 1),
            fixed("platform_fee_collected", U64, 8),
            fixed("creator_fee_collected", U64, 8),
            fixed("total_claimed", U64, 8),
            fixed("last_bet_time", I64, 8),
            fixed("bump", U8, 1),
            fixed("layer", U8, 1),
            fixed("resolution_mode", U8, 1),
            fixed("access_gate", U8, 1),
            fixed("creator", PUBKEY, 32),
            option("oracle_host", PUBKEY, 32),
            fixed("council", PUBKEY[5], 160),
            fixed("council_size", U8, 1),
            fixed("council_votes", Bytes(10), 10),
            fixed("council_threshold", U8, 1),
            fixed("creator_fee_bps", U16, 2),
            option("creator_profile", PUBKEY, 32),
            fixed("platform_fee_bps_at_creation", U16, 2),
            fixed("affiliate_fee_bps_at_creation", U16, 2),
            fixed("betting_freeze_seconds_at_creation", I64, 8),
            fixed("dust_swept", Bool, 1),
            fixed("reserved", Bytes(19), 19),
        ],
        min_size=500,
    ),
}

# GlobalConfig is read without a discriminator check.
GLOBAL_CONFIG_LAYOUTS: Dict[str, AccountLayout] = {
    "4.7.6": AccountLayout(
        "GlobalConfig",
        None,
        [
            fixed("admin", PUBKEY, 32),
            fixed("treasury", PUBKEY, 32),
            fixed("guardian", PUBKEY, 32),
            fixed("reserved_usdc_mint", Bytes(32), 32),
            fixed("reserved_creation_fee_usdc", U64, 8),
            fixed("creation_fee_sol", U64, 8),
            fixed("reserved_market_bond_usdc", U64, 8),
            fixed("market_bond_sol", U64, 8),
            fixed("platform_fee_bps", U16, 2),
            fixed("market_count", U64, 8),
        ],
    ),
}

USER_POSITION_LAYOUTS: Dict[str, AccountLayout] = {
    "4.7.6": AccountLayout(
        "UserPosition",
        USER_POSITION_DISCRIMINATOR,
        [
            fixed("user", PUBKEY, 32),
            fixed("market_id", U64, 8),
            fixed("yes_amount", U64, 8),
            fixed("no_amount", U64, 8),
            fixed("claimed", Bool, 1),
            fixed("bump", U8, 1),
            option("referred_by", PUBKEY, 32),
            fixed("affiliate_fee_paid", U64, 8),
            fixed("reserved", Bytes(16), 16),
        ],
    ),
}

AFFILIATE_LAYOUTS: Dict[str, AccountLayout] = {
    "4.7.6": AccountLayout(
        "Affiliate",
        AFFILIATE_DISCRIMINATOR,
        [
            fixed("owner", PUBKEY, 32),
            string("code"),
            fixed("total_earned", U64, 8),
            fixed("total_claimed", U64, 8),
            fixed("referral_count", U64, 8),
            fixed("is_active", Bool, 1),
            fixed("bump", U8, 1),
        ],
    ),
}

# Only the prefix the program documents; trailing bytes are ignored.
REFERRED_USER_LAYOUTS: Dict[str, AccountLayout] = {
    "4.7.6": AccountLayout(
        "ReferredUser",
        REFERRED_USER_DISCRIMINATOR,
        [
            fixed("user", PUBKEY, 32),
            fixed("affiliate", PUBKEY, 32),
            fixed("total_bets", U64, 8),
            fixed("total_commission", U64, 8),
            fixed("first_bet_at", I64, 8),
            fixed("last_bet_at", I64, 8),
        ],
    ),
}

DISPUTE_META_LAYOUTS: Dict[str, AccountLayout] = {
    "4.7.6": AccountLayout(
        "DisputeMeta",
        DISPUTE_META_DISCRIMINATOR,
        [
            fixed("market", PUBKEY, 32),
            fixed("disputer", PUBKEY, 32),
            string("reason"),
            option("proposed_outcome", Bool, 1),
            fixed("created_at", I64, 8),
            fixed("deadline", I64, 8),
            fixed("resolved", Bool, 1),
        ],
    ),
}


def _layout(table: Dict[str, AccountLayout], kind: str, config: Optional[ProtocolConfig]) -> AccountLayout:
    version = (config or DEFAULT_CONFIG).layout_version
    layout = table.get(version)
    if layout is None:
        logger.warning("layout_version_unknown account=%s version=%s", kind, version)
        raise LayoutDecodeError(f"No {kind} layout for program version {version}")
    return layout


def market_layout(config: Optional[ProtocolConfig] = None) -> AccountLayout:
    return _layout(MARKET_LAYOUTS, "Market", config)


def race_market_layout(config: Optional[ProtocolConfig] = None) -> AccountLayout:
    return _layout(RACE_MARKET_LAYOUTS, "RaceMarket", config)


def global_config_layout(config: Optional[ProtocolConfig] = None) -> AccountLayout:
    return _layout(GLOBAL_CONFIG_LAYOUTS, "GlobalConfig", config)


def user_position_layout(config: Optional[ProtocolConfig] = None) -> AccountLayout:
    return _layout(USER_POSITION_LAYOUTS, "UserPosition", config)


def affiliate_layout(config: Optional[ProtocolConfig] = None) -> AccountLayout:
    return _layout(AFFILIATE_LAYOUTS, "Affiliate", config)


def referred_user_layout(config: Optional[ProtocolConfig] = None) -> AccountLayout:
    return _layout(REFERRED_USER_LAYOUTS, "ReferredUser", config)


def dispute_meta_layout(config: Optional[ProtocolConfig] = None) -> AccountLayout:
    return _layout(DISPUTE_META_LAYOUTS, "DisputeMeta", config)


def is_whitelist_required(layer: int, access_gate: int) -> bool:
    # Lab and Official markets are public whatever the stored gate byte says.
    return layer == Layer.PRIVATE and access_gate == AccessGate.WHITELIST


def read_market_field(data: bytes, name: str, config: Optional[ProtocolConfig] = None):
    return market_layout(config).read(data, name)


def read_market_id(data: bytes, config: Optional[ProtocolConfig] = None) -> int:
    return read_market_field(data, "market_id", config)


def read_market_gating(data: bytes, config: Optional[ProtocolConfig] = None) -> Tuple[int, int]:
    values = market_layout(config).read_fields(data, ["layer", "access_gate"])
    return values["layer"], values["access_gate"]


def read_race_market_field(data: bytes, name: str, config: Optional[ProtocolConfig] = None):
    return race_market_layout(config).read(data, name)


def read_config_market_count(data: bytes, config: Optional[ProtocolConfig] = None) -> int:
    return global_config_layout(config).read(data, "market_count")


def _percent(part: float, total: float, fallback: float) -> float:
    return round(part / total * 100, 2) if total > 0 else round(fallback, 2)


def _betting_open(status: int, closing_time: int, freeze_seconds: int, now: Optional[int]) -> Optional[bool]:
    if now is None:
        return None
    return status == MarketStatus.ACTIVE and now < closing_time - freeze_seconds


def parse_market_account(data: bytes, config: Optional[ProtocolConfig] = None, now: Optional[int] = None) -> dict:
    market = market_layout(config).decode(data)
    yes_sol = lamports_to_sol(market["yes_pool"])
    no_sol = lamports_to_sol(market["no_pool"])
    total_sol = yes_sol + no_sol
    market.update(
        {
            "status_name": status_name(market["status"]),
            "layer_name": layer_name(market["layer"]),
            "yes_pool_sol": round(yes_sol, 4),
            "no_pool_sol": round(no_sol, 4),
            "total_pool_sol": round(total_sol, 4),
            "yes_percent": _percent(yes_sol, total_sol, 50),
            "no_percent": _percent(no_sol, total_sol, 50),
            "whitelist_required": is_whitelist_required(market["layer"], market["access_gate"]),
            "is_betting_open": _betting_open(
                market["status"], market["closing_time"], market["betting_freeze_seconds_at_creation"], now
            ),
        }
    )
    return market


def _label(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


def parse_race_market_account(data: bytes, config: Optional[ProtocolConfig] = None, now: Optional[int] = None) -> dict:
    race = race_market_layout(config).decode(data)
    count = race["outcome_count"]
    labels: List[str] = [_label(raw) for raw in race["outcome_labels"][:count]]
    pools: List[int] = list(race["outcome_pools"][:count])
    total_sol = lamports_to_sol(race["total_pool"])
    race.update(
        {
            "outcome_labels": labels,
            "outcome_pools": pools,
            "outcomes": [
                {
                    "index": idx,
                    "label": label,
                    "pool_sol": round(lamports_to_sol(pool), 4),
                    "percent": _percent(lamports_to_sol(pool), total_sol, 100 / count if count else 0),
                }
                for idx, (label, pool) in enumerate(zip(labels, pools))
            ],
            "total_pool_sol": round(total_sol, 4),
            "status_name": status_name(race["status"]),
            "layer_name": layer_name(race["layer"]),
            "whitelist_required": is_whitelist_required(race["layer"], race["access_gate"]),
            "is_betting_open": _betting_open(
                race["status"], race["closing_time"], race["betting_freeze_seconds_at_creation"], now
            ),
        }
    )
    return race


def parse_global_config_account(data: bytes, config: Optional[ProtocolConfig] = None) -> dict:
    return global_config_layout(config).decode(data)


def _sol(lamports: int) -> float:
    return round(lamports_to_sol(lamports), 4)


def parse_user_position_account(data: bytes, config: Optional[ProtocolConfig] = None) -> dict:
    position = user_position_layout(config).decode(data)
    yes, no = position["yes_amount"], position["no_amount"]
    if yes > 0 and no > 0:
        side = "Both"
    elif yes > 0:
        side = "Yes"
    else:
        side = "No"
    position.update(
        {
            "yes_amount_sol": _sol(yes),
            "no_amount_sol": _sol(no),
            "total_amount_sol": _sol(yes + no),
            "side": side,
            "affiliate_fee_paid_sol": _sol(position["affiliate_fee_paid"]),
        }
    )
    return position


def parse_affiliate_account(data: bytes, config: Optional[ProtocolConfig] = None) -> dict:
    affiliate = affiliate_layout(config).decode(data)
    earned, claimed = affiliate["total_earned"], affiliate["total_claimed"]
    affiliate.update(
        {
            "total_earned_sol": _sol(earned),
            "total_claimed_sol": _sol(claimed),
            "unclaimed_sol": _sol(max(earned - claimed, 0)),
        }
    )
    return affiliate


def parse_referred_user_account(data: bytes, config: Optional[ProtocolConfig] = None) -> dict:
    referred = referred_user_layout(config).decode(data)
    referred["total_bets_sol"] = _sol(referred["total_bets"])
    referred["total_commission_sol"] = _sol(referred["total_commission"])
    return referred


def parse_dispute_meta_account(
    data: bytes, config: Optional[ProtocolConfig] = None, now: Optional[int] = None
) -> dict:
    dispute = dispute_meta_layout(config).decode(data)
    # None when no clock is given, like is_betting_open
    dispute["window_open"] = None if now is None else (not dispute["resolved"] and now < dispute["deadline"])
    return dispute
