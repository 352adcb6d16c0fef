import pytest
from solders.pubkey import Pubkey

from baozi_codec.config import DEFAULT_CONFIG
from baozi_codec.errors import InputError
from baozi_codec.pda import (
    MARKET_SEED,
    WHITELIST_SEED,
    affiliate_pda,
    config_pda,
    derive_address,
    market_pda,
    position_pda,
    race_position_pda,
    race_whitelist_pda,
    revenue_config_pda,
    sol_treasury_pda,
    u64_le,
    whitelist_pda,
)

from .factories import key


class TestDeriveAddress:
    def test_identical_seeds_give_identical_address(self):
        """Derivation is a pure function of seeds and program id."""
        seeds = [MARKET_SEED, u64_le(5)]
        assert derive_address(seeds, DEFAULT_CONFIG.program_id) == derive_address(seeds, DEFAULT_CONFIG.program_id)

    def test_matches_solders_search(self):
        """Address and bump agree with the runtime's bump search."""
        seeds = [MARKET_SEED, u64_le(5)]
        assert derive_address(seeds, DEFAULT_CONFIG.program_id) == Pubkey.find_program_address(
            seeds, DEFAULT_CONFIG.program_id
        )

    def test_bump_in_range(self):
        """Bump is a single byte."""
        _, bump = derive_address([MARKET_SEED, u64_le(1)], DEFAULT_CONFIG.program_id)
        assert 0 <= bump <= 255

    def test_rejects_long_seed(self):
        """A seed over 32 bytes is an input error."""
        with pytest.raises(InputError, match="max 32"):
            derive_address([b"x" * 33], DEFAULT_CONFIG.program_id)

    def test_rejects_too_many_seeds(self):
        """More than 15 caller seeds leaves no room for the bump."""
        with pytest.raises(InputError, match="too many seeds"):
            derive_address([b"a"] * 16, DEFAULT_CONFIG.program_id)


class TestNamedDerivations:
    def test_market_ids_differ(self):
        """market_id 5 and 6 map to different market accounts."""
        assert market_pda(5) != market_pda(6)

    def test_market_id_little_endian(self):
        """Ids are encoded as 8-byte little-endian seeds."""
        expected, _ = Pubkey.find_program_address([b"market", (5).to_bytes(8, "little")], DEFAULT_CONFIG.program_id)
        assert market_pda(5) == expected

    def test_position_depends_on_user(self):
        """Two users get two positions in the same market."""
        assert position_pda(5, key(1)) != position_pda(5, key(2))

    def test_race_position_distinct_from_position(self):
        """Race positions use their own seed prefix."""
        assert race_position_pda(5, key(1)) != position_pda(5, key(1))

    def test_whitelist_seeded_by_market_id(self):
        """Boolean whitelist is keyed by the market id."""
        expected, _ = Pubkey.find_program_address([WHITELIST_SEED, u64_le(9)], DEFAULT_CONFIG.program_id)
        assert whitelist_pda(9) == expected

    def test_race_whitelist_seeded_by_market_key(self):
        """Race whitelist is keyed by the race market address."""
        expected, _ = Pubkey.find_program_address([b"race_whitelist", bytes(key(4))], DEFAULT_CONFIG.program_id)
        assert race_whitelist_pda(key(4)) == expected

    def test_program_id_changes_address(self):
        """Another deployment derives a different address for the same seeds."""
        other = DEFAULT_CONFIG.model_copy(update={"program_id": key(5)})
        assert market_pda(5, other) != market_pda(5)

    def test_affiliate_code_too_long(self):
        """Affiliate codes are seeds, so they cannot exceed 32 bytes."""
        with pytest.raises(InputError):
            affiliate_pda("x" * 33)


class TestU64:
    def test_negative_id_rejected(self):
        """Ids must be unsigned."""
        with pytest.raises(InputError, match="u64"):
            u64_le(-1)

    def test_overflow_rejected(self):
        """Ids must fit in 64 bits."""
        with pytest.raises(InputError, match="u64"):
            u64_le(2**64)


class TestSingletons:
    def test_singletons_distinct(self):
        """Config, treasury and revenue config are separate accounts."""
        assert len({config_pda(), sol_treasury_pda(), revenue_config_pda()}) == 3
