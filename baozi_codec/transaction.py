from __future__ import annotations

import base64
from typing import List

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .errors import InputError


def instruction_to_dict(ix: Instruction) -> dict:
    return {
        "program_id": str(ix.program_id),
        "keys": [
            {
                "pubkey": str(k.pubkey),
                "is_signer": k.is_signer,
                "is_writable": k.is_writable,
            }
            for k in ix.accounts
        ],
        "data": base64.b64encode(bytes(ix.data)).decode(),
    }


def compile_message(ixs: List[Instruction], payer: Pubkey, blockhash: str) -> MessageV0:
    if not ixs:
        raise InputError("at least one instruction is required")
    try:
        recent = Hash.from_string(blockhash)
    except Exception as exc:  # noqa: BLE001
        raise InputError(f"invalid blockhash {blockhash!r}: {exc}") from exc
    return MessageV0.try_compile(payer, ixs, [], recent)


def message_from_instructions(ixs: List[Instruction], payer: Pubkey, blockhash: str) -> str:
    message = compile_message(ixs, payer, blockhash)
    return base64.b64encode(bytes(message)).decode()


def unsigned_transaction_b64(ixs: List[Instruction], payer: Pubkey, blockhash: str) -> str:
    """Versioned transaction with every signer slot zeroed, ready for a wallet to sign."""
    message = compile_message(ixs, payer, blockhash)
    required = message.header.num_required_signatures
    tx = VersionedTransaction.populate(message, [Signature.default() for _ in range(required)])
    return base64.b64encode(bytes(tx)).decode()
