"""Instruction data schema: opcode discriminator plus ordered argument layout.

``INSTRUCTIONS`` is the only place argument order and widths are declared;
``encode_instruction`` and ``decode_instruction_data`` both read from it.
"""
from __future__ import annotations

from typing import Dict, NamedTuple, Optional, Tuple

from borsh_construct import Bool, CStruct, I64, Option, String, U16, U64, U8, Vec
from construct import ConstructError

from .errors import InputError
from .layouts import PUBKEY


class InstructionSpec(NamedTuple):
    name: str
    discriminator: bytes
    args: Optional[CStruct]


BetArgs = CStruct("outcome" / Bool, "amount" / U64)
RaceBetArgs = CStruct("outcome_index" / U8, "amount" / U64)
OutcomeArgs = CStruct("outcome" / Bool)
OutcomeIndexArgs = CStruct("outcome_index" / U8)
VoteArgs = CStruct("vote_yes" / Bool)
VoteIndexArgs = CStruct("vote_outcome_index" / U8)
AffiliateCodeArgs = CStruct("code" / String)
ToggleAffiliateArgs = CStruct("active" / Bool)
WhitelistUserArgs = CStruct("user" / PUBKEY)
CreatorProfileArgs = CStruct("display_name" / String, "default_fee_bps" / U16)
ExtendMarketArgs = CStruct("new_closing_time" / I64, "new_resolution_time" / Option(I64))
CancelArgs = CStruct("reason" / String)
CreateMarketArgs = CStruct(
    "question" / String,
    "closing_time" / I64,
    "resolution_buffer" / I64,
    "auto_stop_buffer" / I64,
    "resolution_mode" / U8,
    "council" / Vec(PUBKEY),
    "council_threshold" / U8,
)
CreateRaceMarketArgs = CStruct(
    "question" / String,
    "outcomes" / Vec(String),
    "closing_time" / I64,
    "resolution_buffer" / I64,
    "auto_stop_buffer" / I64,
    "layer" / U8,
    "resolution_mode" / U8,
    "access_gate" / U8,
    "council" / Option(Vec(PUBKEY)),
    "council_threshold" / Option(U8),
)


def _spec(name: str, disc, args: Optional[CStruct] = None) -> Tuple[str, InstructionSpec]:
    return name, InstructionSpec(name, bytes(disc), args)


# Discriminators are pinned to the deployed program rather than recomputed.
INSTRUCTIONS: Dict[str, InstructionSpec] = dict(
    [
        # betting
        _spec("place_bet_sol", [137, 137, 247, 253, 233, 243, 48, 170], BetArgs),
        _spec("place_bet_sol_with_affiliate", [197, 186, 187, 145, 252, 239, 101, 96], BetArgs),
        _spec("bet_on_race_outcome_sol", [195, 181, 151, 159, 105, 100, 234, 244], RaceBetArgs),
        _spec("bet_on_race_outcome_sol_with_affiliate", [26, 224, 14, 181, 67, 52, 24, 0], RaceBetArgs),
        # claims
        _spec("claim_winnings_sol", [64, 158, 207, 116, 128, 129, 169, 76]),
        _spec("claim_refund_sol", [8, 82, 5, 144, 194, 114, 255, 20]),
        _spec("claim_affiliate_sol", [125, 18, 164, 112, 216, 207, 197, 201]),
        _spec("claim_race_winnings_sol", [46, 120, 202, 194, 126, 72, 22, 52]),
        _spec("claim_race_refund", [174, 101, 101, 227, 171, 69, 173, 243]),
        _spec("claim_creator_sol", [21, 25, 164, 47, 81, 156, 199, 103]),
        # affiliates
        _spec("register_affiliate", [87, 121, 99, 184, 126, 63, 103, 217], AffiliateCodeArgs),
        _spec("toggle_affiliate", [47, 161, 133, 19, 172, 44, 43, 194], ToggleAffiliateArgs),
        # resolution
        _spec("propose_resolution", [19, 68, 181, 23, 194, 146, 152, 252], OutcomeArgs),
        _spec("propose_resolution_host", [116, 231, 75, 185, 127, 129, 46, 124], OutcomeArgs),
        _spec("resolve_market", [155, 23, 80, 173, 46, 74, 23, 239], OutcomeArgs),
        _spec("resolve_market_host", [140, 50, 133, 146, 72, 5, 210, 116], OutcomeArgs),
        _spec("finalize_resolution", [191, 74, 94, 214, 45, 150, 152, 125]),
        _spec("propose_race_resolution", [14, 204, 17, 188, 243, 49, 107, 255], OutcomeIndexArgs),
        _spec("resolve_race", [181, 252, 7, 209, 242, 100, 95, 172], OutcomeIndexArgs),
        _spec("finalize_race_resolution", [19, 232, 81, 138, 191, 218, 54, 200]),
        # disputes
        _spec("flag_dispute", [150, 222, 78, 72, 117, 140, 2, 75]),
        _spec("flag_race_dispute", [154, 160, 110, 29, 65, 3, 77, 7]),
        _spec("vote_council", [252, 167, 165, 182, 221, 242, 174, 249], VoteArgs),
        _spec("vote_council_race", [79, 176, 145, 193, 225, 24, 183, 234], VoteIndexArgs),
        _spec("change_council_vote", [70, 96, 72, 253, 134, 120, 254, 76], VoteArgs),
        _spec("change_council_vote_race", [54, 185, 210, 126, 40, 252, 146, 6], VoteIndexArgs),
        # whitelist
        _spec("add_to_whitelist", [157, 211, 52, 54, 144, 81, 5, 55], WhitelistUserArgs),
        _spec("remove_from_whitelist", [7, 144, 216, 239, 243, 236, 193, 235], WhitelistUserArgs),
        _spec("create_race_whitelist", [236, 103, 41, 9, 152, 23, 229, 58]),
        _spec("add_to_race_whitelist", [144, 229, 112, 184, 199, 39, 27, 156], WhitelistUserArgs),
        _spec("remove_from_race_whitelist", [150, 136, 17, 158, 48, 19, 39, 232], WhitelistUserArgs),
        # creator profile
        _spec("create_creator_profile", [139, 244, 127, 145, 95, 172, 140, 154], CreatorProfileArgs),
        _spec("update_creator_profile", [8, 240, 162, 55, 110, 46, 177, 108], CreatorProfileArgs),
        # market management
        _spec("close_market", [88, 154, 248, 186, 48, 14, 123, 244]),
        _spec("close_race_market", [39, 189, 166, 118, 134, 37, 102, 41]),
        _spec("extend_market", [105, 89, 206, 205, 57, 31, 153, 252], ExtendMarketArgs),
        _spec("extend_race_market", [242, 176, 227, 152, 79, 116, 110, 168], ExtendMarketArgs),
        _spec("cancel_market", [205, 121, 84, 210, 222, 71, 150, 11], CancelArgs),
        _spec("cancel_race", [28, 31, 113, 29, 126, 206, 39, 119], CancelArgs),
        # market creation
        _spec("create_lab_market_sol", [35, 159, 50, 67, 31, 134, 199, 157], CreateMarketArgs),
        _spec("create_private_table_sol", [242, 241, 183, 108, 35, 183, 38, 241], CreateMarketArgs),
        _spec("create_race_market_sol", [94, 237, 40, 47, 63, 233, 25, 67], CreateRaceMarketArgs),
    ]
)

_BY_DISCRIMINATOR: Dict[bytes, InstructionSpec] = {spec.discriminator: spec for spec in INSTRUCTIONS.values()}


def encode_instruction(name: str, **args) -> bytes:
    spec = INSTRUCTIONS.get(name)
    if spec is None:
        raise InputError(f"Unsupported instruction {name}")
    if spec.args is None:
        if args:
            raise InputError(f"{name} takes no arguments, got {sorted(args)}")
        return spec.discriminator
    try:
        return spec.discriminator + spec.args.build(args)
    except (ConstructError, KeyError, TypeError, UnicodeEncodeError) as exc:
        raise InputError(f"Cannot encode {name}: {exc}") from exc


def decode_instruction_data(data: bytes) -> Tuple[str, dict]:
    spec = _BY_DISCRIMINATOR.get(bytes(data[:8]))
    if spec is None:
        raise InputError(f"Unknown instruction discriminator {bytes(data[:8]).hex()}")
    if spec.args is None:
        return spec.name, {}
    parsed = spec.args.parse(bytes(data[8:]))
    return spec.name, {key: value for key, value in parsed.items() if not key.startswith("_")}
