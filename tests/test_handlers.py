import base64
from datetime import datetime, timedelta

import pytest
from solders.hash import Hash

from baozi_codec.constants import AccessGate, Layer, MarketStatus
from baozi_codec.errors import InputError, LayoutDecodeError
from baozi_codec.handlers import (
    build_batch_claim,
    build_bet,
    build_claim,
    build_create_lab_market,
    build_create_private_market,
    build_create_race_market,
    build_race_bet,
    from_unix,
    quote_from_market,
    to_unix,
    validate_bet_from_market,
)
from baozi_codec.instructions import decode_instruction_data
from baozi_codec.models import (
    BatchClaimItem,
    BatchClaimRequest,
    BetRequest,
    ClaimRequest,
    CreateLabMarketRequest,
    CreatePrivateMarketRequest,
    CreateRaceMarketRequest,
    QuoteRequest,
    RaceBetRequest,
)
from baozi_codec.pda import market_pda, position_pda, race_market_pda, whitelist_pda

from .factories import NOW, NOW_TS, config_bytes, key, market_bytes, race_bytes

WALLET = str(key(1))
MARKET = str(key(3))
BLOCKHASH = str(Hash.default())


def ix_data(resp, index=0) -> bytes:
    return base64.b64decode(resp.instructions[index].data)


class TestBuildBet:
    def test_public_bet(self):
        """Market id and gating come from the account bytes."""
        resp = build_bet(BetRequest(wallet=WALLET, market=MARKET, side="Yes", amount_sol=1.5), market_bytes())
        data = ix_data(resp)
        assert data[8] == 1
        assert int.from_bytes(data[9:17], "little") == 1_500_000_000
        assert resp.accounts["position"] == str(position_pda(42, key(1)))
        assert resp.message_b64 is None

    def test_private_whitelist_bet(self):
        """A Private + Whitelist market puts the whitelist PDA in the slot."""
        data = market_bytes(layer=Layer.PRIVATE, access_gate=AccessGate.WHITELIST)
        resp = build_bet(BetRequest(wallet=WALLET, market=MARKET, side="No", amount_sol=1), data)
        assert resp.instructions[0].keys[3].pubkey == str(whitelist_pda(42))

    def test_with_blockhash(self):
        """A blockhash yields a compiled message and an unsigned transaction."""
        req = BetRequest(wallet=WALLET, market=MARKET, side="Yes", amount_sol=1, recent_blockhash=BLOCKHASH)
        resp = build_bet(req, market_bytes())
        assert resp.recent_blockhash == BLOCKHASH
        assert resp.message_b64
        assert resp.tx_v0_b64

    def test_affiliate(self):
        """A valid code picks the affiliate opcode."""
        req = BetRequest(wallet=WALLET, market=MARKET, side="Yes", amount_sol=1, affiliate_code="baozi")
        resp = build_bet(req, market_bytes())
        assert decode_instruction_data(ix_data(resp))[0] == "place_bet_sol_with_affiliate"

    def test_bad_affiliate(self):
        """Invalid codes never reach a seed."""
        req = BetRequest(wallet=WALLET, market=MARKET, side="Yes", amount_sol=1, affiliate_code="no-dash")
        with pytest.raises(InputError, match="Affiliate code"):
            build_bet(req, market_bytes())

    @pytest.mark.parametrize("amount", [0.001, 100.5])
    def test_amount_out_of_bounds(self, amount):
        """Amounts outside 0.01-100 SOL are rejected before building."""
        with pytest.raises(InputError, match="outside"):
            build_bet(BetRequest(wallet=WALLET, market=MARKET, side="Yes", amount_sol=amount), market_bytes())

    @pytest.mark.parametrize("amount", [float("nan"), float("inf")])
    def test_non_finite_amount(self, amount):
        """Non-finite amounts never reach the encoder."""
        with pytest.raises(InputError, match="finite"):
            build_bet(BetRequest(wallet=WALLET, market=MARKET, side="Yes", amount_sol=amount), market_bytes())

    def test_bad_wallet(self):
        """Malformed pubkeys are input errors."""
        with pytest.raises(InputError, match="wallet"):
            build_bet(BetRequest(wallet="nope", market=MARKET, side="Yes", amount_sol=1), market_bytes())

    def test_wrong_account(self):
        """Race bytes are not a boolean market."""
        with pytest.raises(LayoutDecodeError):
            build_bet(BetRequest(wallet=WALLET, market=MARKET, side="Yes", amount_sol=1), race_bytes())


class TestBuildRaceBet:
    def test_race_bet(self):
        """Outcome index and amount land in the payload."""
        req = RaceBetRequest(wallet=WALLET, race_market=str(key(4)), outcome_index=1, amount_sol=0.5)
        resp = build_race_bet(req, race_bytes())
        assert decode_instruction_data(ix_data(resp)) == (
            "bet_on_race_outcome_sol",
            {"outcome_index": 1, "amount": 500_000_000},
        )

    def test_index_past_outcome_count(self):
        """Only outcome_count outcomes are bettable."""
        req = RaceBetRequest(wallet=WALLET, race_market=str(key(4)), outcome_index=3, amount_sol=0.5)
        with pytest.raises(InputError, match="Must be 0-2"):
            build_race_bet(req, race_bytes())


class TestClaims:
    def test_refund(self):
        """refund=True builds a refund claim."""
        resp = build_claim(ClaimRequest(wallet=WALLET, market=MARKET, refund=True), market_bytes())
        assert decode_instruction_data(ix_data(resp))[0] == "claim_refund_sol"

    def test_batch(self):
        """Every entry becomes one instruction in one transaction."""
        req = BatchClaimRequest(
            wallet=WALLET,
            claims=[BatchClaimItem(market=MARKET, market_id=1), BatchClaimItem(market=str(key(4)), market_id=2)],
            recent_blockhash=BLOCKHASH,
        )
        resp = build_batch_claim(req)
        assert len(resp.instructions) == 2
        assert resp.tx_v0_b64

    def test_empty_batch(self):
        """An empty batch is an input error."""
        with pytest.raises(InputError, match="empty"):
            build_batch_claim(BatchClaimRequest(wallet=WALLET, claims=[]))


class TestCreation:
    def test_lab_uses_global_config(self):
        """Market id and treasury are read from GlobalConfig."""
        req = CreateLabMarketRequest(
            wallet=str(key(2)),
            question="Will BTC be above $100,000 on Feb 1? (Source: CoinGecko)",
            closing_time=NOW + timedelta(days=2),
        )
        resp = build_create_lab_market(req, config_bytes(market_count=77))
        assert resp.accounts["market"] == str(market_pda(77))
        assert resp.instructions[0].keys[2].pubkey == str(key(8))
        args = decode_instruction_data(ix_data(resp))[1]
        assert args["closing_time"] == NOW_TS + 2 * 86_400

    def test_private_creates_whitelist(self):
        """Private tables create their whitelist alongside the market."""
        req = CreatePrivateMarketRequest(
            wallet=str(key(2)), question="Will we ship on time?", closing_time=NOW + timedelta(days=2)
        )
        resp = build_create_private_market(req, config_bytes(market_count=5))
        assert resp.instructions[0].keys[2].pubkey == str(whitelist_pda(5))

    def test_private_race_is_gated(self):
        """Private race markets are created with the whitelist gate."""
        req = CreateRaceMarketRequest(
            wallet=str(key(2)),
            question="Who wins the office pool?",
            closing_time=NOW + timedelta(days=2),
            outcomes=["Ana", "Ben", "Cy"],
            layer="private",
        )
        resp = build_create_race_market(req, config_bytes(market_count=9))
        args = decode_instruction_data(ix_data(resp))[1]
        assert args["layer"] == Layer.PRIVATE
        assert args["access_gate"] == AccessGate.WHITELIST
        assert resp.accounts["race_market"] == str(race_market_pda(9))

    def test_race_bad_outcomes(self):
        """Outcome label problems are raised before building."""
        req = CreateRaceMarketRequest(
            wallet=str(key(2)),
            question="Who wins?",
            closing_time=NOW + timedelta(days=2),
            outcomes=["Solo"],
        )
        with pytest.raises(InputError, match="at least 2"):
            build_create_race_market(req, config_bytes())

    def test_naive_closing_time(self):
        """Timestamps must carry a timezone."""
        req = CreateLabMarketRequest(
            wallet=str(key(2)), question="Will it rain in London?", closing_time=datetime(2026, 2, 1, 12, 0)
        )
        with pytest.raises(InputError, match="timezone"):
            build_create_lab_market(req, config_bytes())


class TestPreflight:
    def test_validate_from_account(self):
        """Status, timing and layer come from the account."""
        result = validate_bet_from_market(market_bytes(), 1, NOW)
        assert result.valid
        assert "This is a Lab market (community-created). DYOR." in result.warnings

    def test_freeze_from_account(self):
        """The freeze window stored at creation wins over the default."""
        data = market_bytes(closing_time=NOW_TS + 600, betting_freeze_seconds_at_creation=900)
        result = validate_bet_from_market(data, 1, NOW)
        assert result.error == "Betting is frozen (10 minutes until close)"

    def test_quote(self):
        """Quotes use live pools and the fee locked at creation."""
        quote = quote_from_market(market_bytes(), QuoteRequest(side="Yes", amount_sol=5), NOW)
        assert quote.valid
        assert quote.fee_bps == 300
        assert quote.expected_payout_sol == 8.2333

    def test_quote_non_finite_amount(self):
        """Quotes reject NaN before touching the pools."""
        with pytest.raises(InputError, match="finite"):
            quote_from_market(market_bytes(), QuoteRequest(side="Yes", amount_sol=float("nan")), NOW)

    def test_quote_on_closed_market(self):
        """Rejected bets come back as an invalid quote."""
        quote = quote_from_market(
            market_bytes(status=MarketStatus.CLOSED), QuoteRequest(side="No", amount_sol=1), NOW
        )
        assert not quote.valid
        assert quote.error == "Market is Closed, not accepting bets"
        assert quote.current_yes_percent == 50


class TestTimestamps:
    def test_round_trip(self):
        """Unix seconds and aware datetimes agree."""
        assert from_unix(to_unix(NOW)) == NOW
