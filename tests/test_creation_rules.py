from datetime import timedelta

import pytest

from baozi_codec.creation_rules import (
    calculate_recommended_closing_time,
    calculate_resolution_time,
    estimate_rent_lamports,
    format_affiliate_link,
    generate_invite_hash,
    get_creation_fee,
    get_invite_link,
    parse_affiliate_code,
    validate_affiliate_code,
    validate_creator_profile,
    validate_market_creation,
    validate_race_outcomes,
)
from baozi_codec.errors import InputError
from baozi_codec.models import CreateMarketParams

from .factories import NOW


def params(**overrides):
    closing = NOW + timedelta(days=2)
    values = {
        "question": "Will Fighter A defeat Fighter B at UFC 300?",
        "closing_time": closing,
        "event_time": closing + timedelta(hours=24),
        "resolution_time": closing + timedelta(hours=25),
    }
    values.update(overrides)
    return CreateMarketParams(**values)


class TestMarketCreation:
    def test_valid_event_market(self):
        """A well-spaced event market passes with computed fees."""
        result = validate_market_creation(params(), NOW)
        assert result.valid
        assert result.computed.rule_type == "A"
        assert result.computed.buffer_hours == 24
        assert result.computed.platform_fee_bps == 300
        assert result.computed.creation_fee_sol == 0.01

    def test_naive_resolution_time(self):
        """Creation checks reject naive timestamps with an input error."""
        naive = (NOW + timedelta(days=3)).replace(tzinfo=None)
        with pytest.raises(InputError, match="resolution_time must be timezone-aware"):
            validate_market_creation(params(resolution_time=naive), NOW)

    def test_short_resolution_buffer(self):
        """Resolution must trail close by at least ten minutes."""
        closing = NOW + timedelta(days=2)
        result = validate_market_creation(params(resolution_time=closing + timedelta(seconds=300)), NOW)
        assert "Resolution buffer too short: 300s (min 600s)" in result.errors

    def test_short_event_buffer_suggests_close(self):
        """Rule A failures come with a recommended closing time."""
        closing = NOW + timedelta(days=2)
        result = validate_market_creation(params(event_time=closing + timedelta(hours=6)), NOW)
        assert not result.valid
        assert result.computed.recommended_closing_time == closing + timedelta(hours=6) - timedelta(hours=24)
        assert result.suggestions

    def test_measurement_overlap(self):
        """Closing after measurement start is invalid."""
        closing = NOW + timedelta(days=2)
        result = validate_market_creation(
            params(event_time=None, measurement_start=closing - timedelta(hours=1)), NOW
        )
        assert result.computed.rule_type == "B"
        assert any("AFTER measurement starts" in e for e in result.errors)

    def test_race_outcomes_checked(self):
        """Outcome errors are numbered from zero at creation time."""
        result = validate_market_creation(params(outcomes=["Brazil", ""]), NOW)
        assert "Outcome 1 is empty" in result.errors
        assert result.computed.estimated_rent_sol == 0.009

    def test_official_needs_approval(self):
        """Official markets warn about admin approval."""
        result = validate_market_creation(params(layer="official"), NOW)
        assert "Official markets require admin approval" in result.warnings
        assert result.computed.platform_fee_bps == 250

    def test_missing_question_mark(self):
        """Questions should end with a question mark."""
        result = validate_market_creation(params(question="Fighter A beats Fighter B at UFC 300"), NOW)
        assert "Question should end with a question mark for clarity" in result.warnings


class TestRaceOutcomes:
    def test_valid(self):
        """Two distinct labels are enough."""
        assert validate_race_outcomes(["Brazil", "France"]).valid

    def test_too_few(self):
        """One outcome is not a race."""
        assert "Race markets require at least 2 outcomes" in validate_race_outcomes(["Brazil"]).errors

    def test_too_many(self):
        """At most ten outcomes fit the account."""
        result = validate_race_outcomes([f"Team {i}" for i in range(11)])
        assert "Race markets limited to 10 outcomes (got 11)" in result.errors

    def test_duplicates_case_insensitive(self):
        """Labels must be unique ignoring case."""
        assert "Outcome labels must be unique" in validate_race_outcomes(["Brazil", "brazil"]).errors

    def test_long_label(self):
        """Labels are capped at 50 characters, numbered from one."""
        assert "Outcome 2 exceeds 50 characters" in validate_race_outcomes(["A", "B" * 51]).errors


class TestFeesAndRent:
    def test_flat_fee(self):
        """Every layer pays the same creation fee."""
        assert get_creation_fee("lab").lamports == get_creation_fee("private").lamports == 10_000_000

    def test_unknown_layer(self):
        """Unknown layers are rejected."""
        with pytest.raises(InputError):
            get_creation_fee("secret")

    def test_rent_scales_with_outcomes(self):
        """Race rent grows per outcome."""
        assert estimate_rent_lamports(4) - estimate_rent_lamports(3) == 500_000
        assert estimate_rent_lamports() == 5_000_000


class TestTimeHelpers:
    def test_resolution_after_event(self):
        """Event markets resolve an hour after the event."""
        event = NOW + timedelta(days=3)
        assert calculate_resolution_time(NOW, "event", event) == event + timedelta(hours=1)

    def test_resolution_default(self):
        """Otherwise resolve a day after closing."""
        assert calculate_resolution_time(NOW, "measurement") == NOW + timedelta(days=1)

    def test_recommended_closing(self):
        """Default recommendation is 24h before the event."""
        assert calculate_recommended_closing_time(NOW) == NOW - timedelta(hours=24)
        assert calculate_recommended_closing_time(NOW, buffer_hours=12) == NOW - timedelta(hours=12)


class TestAffiliateAndProfile:
    @pytest.mark.parametrize("code", ["abc", "BAOZI_2026", "x" * 16])
    def test_good_codes(self, code):
        """Letters, digits and underscores, 3 to 16 long."""
        assert validate_affiliate_code(code).valid

    @pytest.mark.parametrize("code", ["ab", "x" * 17, "bad-code", "trailing\n"])
    def test_bad_codes(self, code):
        """Short, long or punctuated codes are rejected."""
        assert not validate_affiliate_code(code).valid

    def test_profile_limits(self):
        """Display name is capped in bytes and the fee at 50 bps."""
        result = validate_creator_profile("é" * 17, 51)
        assert result.errors == ["Display name must be 32 bytes or less", "Creator fee cannot exceed 50 bps"]
        assert validate_creator_profile("baozi", 50).valid


class TestShareLinks:
    def test_invite_hash_is_random_hex(self):
        """Invite hashes are 32 random bytes in hex."""
        first, second = generate_invite_hash(), generate_invite_hash()
        assert len(first) == 64
        assert bytes.fromhex(first)
        assert first != second

    def test_invite_link(self):
        """Invite links point at the market page."""
        assert get_invite_link("Mkt111", "ab" * 32) == f"https://baozi.ooo/market/Mkt111?invite={'ab' * 32}"

    def test_affiliate_links(self):
        """Market links carry the code as ref, bare links go to the home page."""
        assert format_affiliate_link("baozi") == "https://baozi.ooo?ref=baozi"
        assert format_affiliate_link("baozi", "Mkt111") == "https://baozi.ooo/market/Mkt111?ref=baozi"

    @pytest.mark.parametrize(
        "url, code",
        [
            ("https://baozi.ooo/market/Mkt111?ref=agent_7", "agent_7"),
            ("https://baozi.ooo?invite=x&ref=baozi", "baozi"),
            ("see baozi.ooo?ref=abc for odds", "abc"),
            ("https://baozi.ooo/market/Mkt111", None),
        ],
    )
    def test_parse_affiliate_code(self, url, code):
        """The ref parameter is pulled from links and loose text."""
        assert parse_affiliate_code(url) == code

    def test_link_round_trip(self):
        """A formatted link parses back to its code."""
        assert parse_affiliate_code(format_affiliate_link("baozi", "Mkt111")) == "baozi"
