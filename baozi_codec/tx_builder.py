from __future__ import annotations

from typing import List, Optional, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .config import DEFAULT_CONFIG, ProtocolConfig
from .constants import AccessGate, Layer, ResolutionMode, SYS_PROGRAM_ID
from .instructions import encode_instruction
from .pda import (
    affiliate_pda,
    config_pda,
    council_vote_pda,
    creator_profile_pda,
    dispute_meta_pda,
    market_pda,
    position_pda,
    race_council_vote_pda,
    race_market_pda,
    race_position_pda,
    race_referral_pda,
    race_whitelist_pda,
    referred_user_pda,
    sol_treasury_pda,
    whitelist_pda,
)


def _ro(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=False)


def _w(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=True)


def _signer(pubkey: Pubkey, writable: bool = True) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=True, is_writable=writable)


def _ix(config: ProtocolConfig, data: bytes, accounts: List[AccountMeta]) -> Instruction:
    return Instruction(program_id=config.program_id, data=data, accounts=accounts)


# ---------------------------------------------------------------------------
# betting
# ---------------------------------------------------------------------------


def build_place_bet_ix(
    user: Pubkey,
    market: Pubkey,
    market_id: int,
    outcome: bool,
    amount: int,
    whitelist_required: bool = False,
    affiliate_code: Optional[str] = None,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> Instruction:
    """Bet ``amount`` lamports on YES (``outcome=True``) or NO.

    Accounts:
    0. config
    1. market (writable)
    2. position (writable)
    [3. affiliate (writable), 4. referred_user (writable)]  affiliate variant only
    n. whitelist, or the program id when the market is not gated
    n+1. user (signer, writable)
    n+2. system program
    """
    placeholder = whitelist_pda(market_id, config) if whitelist_required else config.program_id
    accounts = [
        _ro(config_pda(config)),
        _w(market),
        _w(position_pda(market_id, user, config)),
    ]
    if affiliate_code:
        name = "place_bet_sol_with_affiliate"
        accounts.extend([_w(affiliate_pda(affiliate_code, config)), _w(referred_user_pda(user, config))])
    else:
        name = "place_bet_sol"
    accounts.extend([_ro(placeholder), _signer(user), _ro(SYS_PROGRAM_ID)])
    data = encode_instruction(name, outcome=bool(outcome), amount=amount)
    return _ix(config, data, accounts)


def build_race_bet_ix(
    user: Pubkey,
    race_market: Pubkey,
    market_id: int,
    outcome_index: int,
    amount: int,
    whitelist_required: bool = False,
    affiliate_code: Optional[str] = None,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> Instruction:
    placeholder = race_whitelist_pda(race_market, config) if whitelist_required else config.program_id
    accounts = [
        _ro(config_pda(config)),
        _w(race_market),
        _w(race_position_pda(market_id, user, config)),
    ]
    if affiliate_code:
        name = "bet_on_race_outcome_sol_with_affiliate"
        accounts.extend([_w(affiliate_pda(affiliate_code, config)), _w(race_referral_pda(user, config))])
    else:
        name = "bet_on_race_outcome_sol"
    accounts.extend([_ro(placeholder), _signer(user), _ro(SYS_PROGRAM_ID)])
    data = encode_instruction(name, outcome_index=outcome_index, amount=amount)
    return _ix(config, data, accounts)


# ---------------------------------------------------------------------------
# claims
# ---------------------------------------------------------------------------


def build_claim_winnings_ix(
    user: Pubkey, market: Pubkey, market_id: int, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(market),
        _w(position_pda(market_id, user, config)),
        _w(sol_treasury_pda(config)),
        _signer(user),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, encode_instruction("claim_winnings_sol"), accounts)


def build_claim_refund_ix(
    user: Pubkey, market: Pubkey, market_id: int, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _w(market),
        _w(position_pda(market_id, user, config)),
        _signer(user),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, encode_instruction("claim_refund_sol"), accounts)


def build_claim_batch_ixs(
    user: Pubkey,
    claims: Sequence[tuple],
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> List[Instruction]:
    """One claim instruction per ``(market, market_id, is_refund)`` entry, in input order."""
    ixs: List[Instruction] = []
    for market, market_id, is_refund in claims:
        if is_refund:
            ixs.append(build_claim_refund_ix(user, market, market_id, config))
        else:
            ixs.append(build_claim_winnings_ix(user, market, market_id, config))
    return ixs


def build_claim_affiliate_ix(owner: Pubkey, code: str, config: ProtocolConfig = DEFAULT_CONFIG) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(affiliate_pda(code, config)),
        _w(sol_treasury_pda(config)),
        _signer(owner),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, encode_instruction("claim_affiliate_sol"), accounts)


def build_claim_race_winnings_ix(
    user: Pubkey, race_market: Pubkey, market_id: int, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(race_market),
        _w(race_position_pda(market_id, user, config)),
        _w(sol_treasury_pda(config)),
        _signer(user),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, encode_instruction("claim_race_winnings_sol"), accounts)


def build_claim_race_refund_ix(
    user: Pubkey, race_market: Pubkey, market_id: int, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _w(race_market),
        _w(race_position_pda(market_id, user, config)),
        _signer(user),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, encode_instruction("claim_race_refund"), accounts)


def build_claim_creator_ix(owner: Pubkey, config: ProtocolConfig = DEFAULT_CONFIG) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(creator_profile_pda(owner, config)),
        _w(sol_treasury_pda(config)),
        _signer(owner),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, encode_instruction("claim_creator_sol"), accounts)


# ---------------------------------------------------------------------------
# affiliates
# ---------------------------------------------------------------------------


def build_register_affiliate_ix(owner: Pubkey, code: str, config: ProtocolConfig = DEFAULT_CONFIG) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(affiliate_pda(code, config)),
        _signer(owner),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, encode_instruction("register_affiliate", code=code), accounts)


def build_toggle_affiliate_ix(
    admin: Pubkey, code: str, active: bool, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(affiliate_pda(code, config)),
        _signer(admin, writable=False),
    ]
    return _ix(config, encode_instruction("toggle_affiliate", active=bool(active)), accounts)


# ---------------------------------------------------------------------------
# resolution
# ---------------------------------------------------------------------------


def build_propose_resolution_ix(
    proposer: Pubkey, market: Pubkey, outcome: bool, host: bool = False, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(market),
        _w(dispute_meta_pda(market, config)),
        _signer(proposer),
        _ro(SYS_PROGRAM_ID),
    ]
    name = "propose_resolution_host" if host else "propose_resolution"
    return _ix(config, encode_instruction(name, outcome=bool(outcome)), accounts)


def build_resolve_market_ix(
    resolver: Pubkey, market: Pubkey, outcome: bool, host: bool = False, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(market),
        _signer(resolver, writable=False),
    ]
    name = "resolve_market_host" if host else "resolve_market"
    return _ix(config, encode_instruction(name, outcome=bool(outcome)), accounts)


def build_finalize_resolution_ix(
    caller: Pubkey, market: Pubkey, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _w(market),
        _w(dispute_meta_pda(market, config)),
        _signer(caller, writable=False),
    ]
    return _ix(config, encode_instruction("finalize_resolution"), accounts)


def build_propose_race_resolution_ix(
    proposer: Pubkey, race_market: Pubkey, outcome_index: int, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(race_market),
        _w(dispute_meta_pda(race_market, config)),
        _signer(proposer),
        _ro(SYS_PROGRAM_ID),
    ]
    data = encode_instruction("propose_race_resolution", outcome_index=outcome_index)
    return _ix(config, data, accounts)


def build_resolve_race_ix(
    resolver: Pubkey, race_market: Pubkey, outcome_index: int, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(race_market),
        _signer(resolver, writable=False),
    ]
    return _ix(config, encode_instruction("resolve_race", outcome_index=outcome_index), accounts)


def build_finalize_race_resolution_ix(
    caller: Pubkey, race_market: Pubkey, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _w(race_market),
        _w(dispute_meta_pda(race_market, config)),
        _signer(caller, writable=False),
    ]
    return _ix(config, encode_instruction("finalize_race_resolution"), accounts)


# ---------------------------------------------------------------------------
# disputes and council votes
# ---------------------------------------------------------------------------


def build_flag_dispute_ix(
    disputer: Pubkey, market: Pubkey, race: bool = False, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(market),
        _w(dispute_meta_pda(market, config)),
        _signer(disputer, writable=False),
    ]
    name = "flag_race_dispute" if race else "flag_dispute"
    return _ix(config, encode_instruction(name), accounts)


def build_vote_council_ix(
    voter: Pubkey, market: Pubkey, vote_yes: bool, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(market),
        _w(council_vote_pda(market, voter, config)),
        _w(dispute_meta_pda(market, config)),
        _signer(voter),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, encode_instruction("vote_council", vote_yes=bool(vote_yes)), accounts)


def build_change_council_vote_ix(
    voter: Pubkey, market: Pubkey, vote_yes: bool, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(market),
        _w(council_vote_pda(market, voter, config)),
        _w(dispute_meta_pda(market, config)),
        _signer(voter, writable=False),
    ]
    return _ix(config, encode_instruction("change_council_vote", vote_yes=bool(vote_yes)), accounts)


def build_vote_council_race_ix(
    voter: Pubkey, race_market: Pubkey, outcome_index: int, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(race_market),
        _w(race_council_vote_pda(race_market, voter, config)),
        _w(dispute_meta_pda(race_market, config)),
        _signer(voter),
        _ro(SYS_PROGRAM_ID),
    ]
    data = encode_instruction("vote_council_race", vote_outcome_index=outcome_index)
    return _ix(config, data, accounts)


def build_change_council_vote_race_ix(
    voter: Pubkey, race_market: Pubkey, outcome_index: int, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(config_pda(config)),
        _w(race_market),
        _w(race_council_vote_pda(race_market, voter, config)),
        _w(dispute_meta_pda(race_market, config)),
        _signer(voter, writable=False),
    ]
    data = encode_instruction("change_council_vote_race", vote_outcome_index=outcome_index)
    return _ix(config, data, accounts)


# ---------------------------------------------------------------------------
# whitelists
# ---------------------------------------------------------------------------


def build_whitelist_ix(
    creator: Pubkey,
    market: Pubkey,
    market_id: int,
    user: Pubkey,
    remove: bool = False,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> Instruction:
    accounts = [
        _ro(market),
        _w(whitelist_pda(market_id, config)),
        _signer(creator, writable=False),
    ]
    name = "remove_from_whitelist" if remove else "add_to_whitelist"
    return _ix(config, encode_instruction(name, user=user), accounts)


def build_create_race_whitelist_ix(
    creator: Pubkey, race_market: Pubkey, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _ro(race_market),
        _w(race_whitelist_pda(race_market, config)),
        _signer(creator),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, encode_instruction("create_race_whitelist"), accounts)


def build_race_whitelist_ix(
    creator: Pubkey,
    race_market: Pubkey,
    user: Pubkey,
    remove: bool = False,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> Instruction:
    accounts = [
        _ro(race_market),
        _w(race_whitelist_pda(race_market, config)),
        _signer(creator, writable=False),
    ]
    name = "remove_from_race_whitelist" if remove else "add_to_race_whitelist"
    return _ix(config, encode_instruction(name, user=user), accounts)


# ---------------------------------------------------------------------------
# creator profile
# ---------------------------------------------------------------------------


def build_create_creator_profile_ix(
    owner: Pubkey, display_name: str, default_fee_bps: int, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _w(creator_profile_pda(owner, config)),
        _signer(owner),
        _ro(SYS_PROGRAM_ID),
    ]
    data = encode_instruction("create_creator_profile", display_name=display_name, default_fee_bps=default_fee_bps)
    return _ix(config, data, accounts)


def build_update_creator_profile_ix(
    owner: Pubkey, display_name: str, default_fee_bps: int, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    accounts = [
        _w(creator_profile_pda(owner, config)),
        _signer(owner, writable=False),
    ]
    data = encode_instruction("update_creator_profile", display_name=display_name, default_fee_bps=default_fee_bps)
    return _ix(config, data, accounts)


# ---------------------------------------------------------------------------
# market management
# ---------------------------------------------------------------------------


def _management_accounts(caller: Pubkey, market: Pubkey, config: ProtocolConfig) -> List[AccountMeta]:
    return [_ro(config_pda(config)), _w(market), _signer(caller, writable=False)]


def build_close_market_ix(
    caller: Pubkey, market: Pubkey, race: bool = False, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    name = "close_race_market" if race else "close_market"
    return _ix(config, encode_instruction(name), _management_accounts(caller, market, config))


def build_extend_market_ix(
    caller: Pubkey,
    market: Pubkey,
    new_closing_time: int,
    new_resolution_time: Optional[int] = None,
    race: bool = False,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> Instruction:
    name = "extend_race_market" if race else "extend_market"
    data = encode_instruction(name, new_closing_time=new_closing_time, new_resolution_time=new_resolution_time)
    return _ix(config, data, _management_accounts(caller, market, config))


def build_cancel_market_ix(
    caller: Pubkey, market: Pubkey, reason: str, race: bool = False, config: ProtocolConfig = DEFAULT_CONFIG
) -> Instruction:
    name = "cancel_race" if race else "cancel_market"
    return _ix(config, encode_instruction(name, reason=reason), _management_accounts(caller, market, config))


# ---------------------------------------------------------------------------
# market creation
# ---------------------------------------------------------------------------


def _profile_slot(creator_profile: Optional[Pubkey], config: ProtocolConfig) -> AccountMeta:
    if creator_profile is None:
        return _ro(config.program_id)
    return _w(creator_profile)


def _lab_council(creator: Pubkey, resolution_mode: int, council: Optional[Sequence[Pubkey]]) -> List[Pubkey]:
    # Lab markets in council mode fall back to the creator as sole member
    if council is not None:
        return list(council)
    return [creator] if resolution_mode == ResolutionMode.COUNCIL else []


def build_create_lab_market_ix(
    creator: Pubkey,
    market_id: int,
    treasury: Pubkey,
    question: str,
    closing_time: int,
    resolution_buffer: Optional[int] = None,
    auto_stop_buffer: Optional[int] = None,
    resolution_mode: int = ResolutionMode.COUNCIL,
    council: Optional[Sequence[Pubkey]] = None,
    council_threshold: Optional[int] = None,
    creator_profile: Optional[Pubkey] = None,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> Instruction:
    """Create a Lab market. ``market_id`` is the GlobalConfig market_count read just before building."""
    members = _lab_council(creator, resolution_mode, council)
    data = encode_instruction(
        "create_lab_market_sol",
        question=question,
        closing_time=closing_time,
        resolution_buffer=config.default_resolution_buffer_seconds if resolution_buffer is None else resolution_buffer,
        auto_stop_buffer=config.default_auto_stop_buffer_seconds if auto_stop_buffer is None else auto_stop_buffer,
        resolution_mode=int(resolution_mode),
        council=members,
        council_threshold=(1 if members else 0) if council_threshold is None else council_threshold,
    )
    accounts = [
        _w(config_pda(config)),
        _w(market_pda(market_id, config)),
        _w(treasury),
        _signer(creator),
        _profile_slot(creator_profile, config),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, data, accounts)


def build_create_private_market_ix(
    creator: Pubkey,
    market_id: int,
    treasury: Pubkey,
    question: str,
    closing_time: int,
    resolution_buffer: Optional[int] = None,
    auto_stop_buffer: Optional[int] = None,
    resolution_mode: int = ResolutionMode.HOST,
    council: Optional[Sequence[Pubkey]] = None,
    council_threshold: Optional[int] = None,
    creator_profile: Optional[Pubkey] = None,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> Instruction:
    members = list(council) if council is not None else []
    data = encode_instruction(
        "create_private_table_sol",
        question=question,
        closing_time=closing_time,
        resolution_buffer=config.default_resolution_buffer_seconds if resolution_buffer is None else resolution_buffer,
        auto_stop_buffer=config.default_auto_stop_buffer_seconds if auto_stop_buffer is None else auto_stop_buffer,
        resolution_mode=int(resolution_mode),
        council=members,
        council_threshold=0 if council_threshold is None else council_threshold,
    )
    accounts = [
        _w(config_pda(config)),
        _w(market_pda(market_id, config)),
        _w(whitelist_pda(market_id, config)),
        _w(treasury),
        _signer(creator),
        _profile_slot(creator_profile, config),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, data, accounts)


def build_create_race_market_ix(
    creator: Pubkey,
    market_id: int,
    treasury: Pubkey,
    question: str,
    outcomes: Sequence[str],
    closing_time: int,
    resolution_buffer: Optional[int] = None,
    auto_stop_buffer: Optional[int] = None,
    layer: int = Layer.LAB,
    resolution_mode: int = ResolutionMode.COUNCIL,
    access_gate: int = AccessGate.PUBLIC,
    council: Optional[Sequence[Pubkey]] = None,
    council_threshold: Optional[int] = None,
    creator_profile: Optional[Pubkey] = None,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> Instruction:
    data = encode_instruction(
        "create_race_market_sol",
        question=question,
        outcomes=list(outcomes),
        closing_time=closing_time,
        resolution_buffer=config.default_resolution_buffer_seconds if resolution_buffer is None else resolution_buffer,
        auto_stop_buffer=config.default_auto_stop_buffer_seconds if auto_stop_buffer is None else auto_stop_buffer,
        layer=int(layer),
        resolution_mode=int(resolution_mode),
        access_gate=int(access_gate),
        council=list(council) if council else None,
        council_threshold=council_threshold,
    )
    accounts = [
        _w(config_pda(config)),
        _w(race_market_pda(market_id, config)),
        _profile_slot(creator_profile, config),
        _w(treasury),
        _signer(creator),
        _ro(SYS_PROGRAM_ID),
    ]
    return _ix(config, data, accounts)
