import base64

import pytest
from solders.hash import Hash
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from baozi_codec.errors import InputError
from baozi_codec.transaction import (
    instruction_to_dict,
    message_from_instructions,
    unsigned_transaction_b64,
)
from baozi_codec.tx_builder import build_claim_winnings_ix, build_place_bet_ix

BLOCKHASH = str(Hash.default())


class TestInstructionToDict:
    def test_shape(self, user, market_key):
        """Keys keep order and flags, data is base64."""
        ix = build_place_bet_ix(user, market_key, 1, True, 10_000_000)
        meta = instruction_to_dict(ix)
        assert meta["program_id"] == str(ix.program_id)
        assert len(meta["keys"]) == len(ix.accounts)
        assert meta["keys"][4] == {"pubkey": str(user), "is_signer": True, "is_writable": True}
        assert base64.b64decode(meta["data"]) == bytes(ix.data)


class TestMessages:
    def test_message_payer_first(self, user, market_key):
        """The fee payer is the first static key."""
        encoded = message_from_instructions([build_claim_winnings_ix(user, market_key, 1)], user, BLOCKHASH)
        message = MessageV0.from_bytes(base64.b64decode(encoded))
        assert message.account_keys[0] == user
        assert message.header.num_required_signatures == 1

    def test_unsigned_transaction(self, user, market_key):
        """Signature slots are present but zeroed."""
        encoded = unsigned_transaction_b64([build_claim_winnings_ix(user, market_key, 1)], user, BLOCKHASH)
        tx = VersionedTransaction.from_bytes(base64.b64decode(encoded))
        assert len(tx.signatures) == 1
        assert bytes(tx.signatures[0]) == bytes(64)

    def test_bad_blockhash(self, user, market_key):
        """A non-base58 blockhash is an input error."""
        with pytest.raises(InputError, match="invalid blockhash"):
            message_from_instructions([build_claim_winnings_ix(user, market_key, 1)], user, "not-a-hash")

    def test_empty_instruction_list(self, user):
        """A transaction needs at least one instruction."""
        with pytest.raises(InputError, match="at least one"):
            message_from_instructions([], user, BLOCKHASH)
