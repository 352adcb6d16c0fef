from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from solders.pubkey import Pubkey

from .config import DEFAULT_CONFIG, ProtocolConfig
from .errors import InputError

CONFIG_SEED = b"config"
MARKET_SEED = b"market"
POSITION_SEED = b"position"
RACE_SEED = b"race"
RACE_POSITION_SEED = b"race_position"
WHITELIST_SEED = b"whitelist"
RACE_WHITELIST_SEED = b"race_whitelist"
AFFILIATE_SEED = b"affiliate"
REFERRED_SEED = b"referred"
RACE_REFERRAL_SEED = b"race_referral"
CREATOR_PROFILE_SEED = b"creator_profile"
SOL_TREASURY_SEED = b"sol_treasury"
REVENUE_CONFIG_SEED = b"revenue_config"
DISPUTE_META_SEED = b"dispute_meta"
COUNCIL_VOTE_SEED = b"council_vote"
RACE_COUNCIL_VOTE_SEED = b"race_council_vote"

MAX_SEED_LEN = 32
MAX_SEEDS = 16
U64_MAX = 2**64 - 1


def u64_le(value: int) -> bytes:
    if not isinstance(value, int) or value < 0 or value > U64_MAX:
        raise InputError(f"id {value!r} does not fit in u64")
    return value.to_bytes(8, "little")


def derive_address(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Find the program address and bump for ``seeds``.

    Bumps are scanned from 255 down and the first off-curve hash wins, the same
    search the runtime performs, so identical seeds always give the same address.
    """
    if len(seeds) > MAX_SEEDS - 1:
        raise InputError(f"too many seeds: {len(seeds)}")
    for idx, seed in enumerate(seeds):
        if len(seed) > MAX_SEED_LEN:
            raise InputError(f"seed {idx} is {len(seed)} bytes, max {MAX_SEED_LEN}")
    return Pubkey.find_program_address(list(seeds), program_id)


def _pda(seeds: List[bytes], config: Optional[ProtocolConfig]) -> Pubkey:
    return derive_address(seeds, (config or DEFAULT_CONFIG).program_id)[0]


def config_pda(config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([CONFIG_SEED], config)


def sol_treasury_pda(config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([SOL_TREASURY_SEED], config)


def revenue_config_pda(config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([REVENUE_CONFIG_SEED], config)


def market_pda(market_id: int, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([MARKET_SEED, u64_le(market_id)], config)


def race_market_pda(market_id: int, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([RACE_SEED, u64_le(market_id)], config)


def position_pda(market_id: int, user: Pubkey, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([POSITION_SEED, u64_le(market_id), bytes(user)], config)


def race_position_pda(market_id: int, user: Pubkey, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([RACE_POSITION_SEED, u64_le(market_id), bytes(user)], config)


def whitelist_pda(market_id: int, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([WHITELIST_SEED, u64_le(market_id)], config)


def race_whitelist_pda(race_market: Pubkey, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([RACE_WHITELIST_SEED, bytes(race_market)], config)


def affiliate_pda(code: str, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([AFFILIATE_SEED, code.encode("utf-8")], config)


def referred_user_pda(user: Pubkey, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([REFERRED_SEED, bytes(user)], config)


def race_referral_pda(user: Pubkey, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([RACE_REFERRAL_SEED, bytes(user)], config)


def creator_profile_pda(owner: Pubkey, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([CREATOR_PROFILE_SEED, bytes(owner)], config)


def dispute_meta_pda(market: Pubkey, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([DISPUTE_META_SEED, bytes(market)], config)


def council_vote_pda(market: Pubkey, voter: Pubkey, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([COUNCIL_VOTE_SEED, bytes(market), bytes(voter)], config)


def race_council_vote_pda(race_market: Pubkey, voter: Pubkey, config: Optional[ProtocolConfig] = None) -> Pubkey:
    return _pda([RACE_COUNCIL_VOTE_SEED, bytes(race_market), bytes(voter)], config)
