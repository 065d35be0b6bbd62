"""Unit tests for MintPricingEngine."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from launchpad_oracle.src.MintPricingEngine import (
    MintPricingError,
    bonding_curve_price,
    compute_mint_price,
    find_active_phase,
    is_wallet_eligible,
)
from launchpad_oracle.src.PricingConfig import (
    AllowListEligibility,
    BondingCurve,
    CollectionPricingConfig,
    CurveType,
    OpenEligibility,
    TokenHoldingEligibility,
    WhitelistPhase,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
WALLET = "0xAbC0000000000000000000000000000000000001"


def make_phase(
    phase_id: str = "early",
    multiplier: float = 0.5,
    start_offset: timedelta = timedelta(hours=-1),
    end_offset: timedelta = timedelta(hours=1),
    **kwargs,
) -> WhitelistPhase:
    return WhitelistPhase(
        id=phase_id,
        start_time=NOW + start_offset,
        end_time=NOW + end_offset,
        price_multiplier=multiplier,
        **kwargs,
    )


class TestBondingCurvePrice:
    """Test the curve formulas."""

    def test_linear(self) -> None:
        """Linear curves should grow by increment per minted item."""
        curve = BondingCurve(initial_price=1.0, increment=0.1, max_price=5.0)
        assert bonding_curve_price(curve, 0) == pytest.approx(1.0)
        assert bonding_curve_price(curve, 20) == pytest.approx(3.0)

    def test_linear_clamped(self) -> None:
        """Linear curves should be capped at max_price."""
        curve = BondingCurve(initial_price=1.0, increment=0.1, max_price=5.0)
        assert bonding_curve_price(curve, 100) == 5.0

    def test_exponential(self) -> None:
        """Exponential curves should compound the increment per item."""
        curve = BondingCurve(
            initial_price=1.0,
            increment=0.05,
            max_price=10.0,
            curve_type=CurveType.EXPONENTIAL,
        )
        assert bonding_curve_price(curve, 10) == pytest.approx(1.05**10)
        assert bonding_curve_price(curve, 10) == pytest.approx(1.6289, abs=1e-4)

    def test_exponential_large_supply(self) -> None:
        """Huge supplies should clamp instead of overflowing."""
        curve = BondingCurve(
            initial_price=1.0,
            increment=0.05,
            max_price=10.0,
            curve_type=CurveType.EXPONENTIAL,
        )
        assert bonding_curve_price(curve, 10**9) == 10.0

    def test_logarithmic(self) -> None:
        """Logarithmic curves should grow with ln(supply + 1)."""
        curve = BondingCurve(
            initial_price=1.0,
            increment=2.0,
            max_price=100.0,
            curve_type=CurveType.LOGARITHMIC,
        )
        assert bonding_curve_price(curve, 0) == pytest.approx(1.0)
        assert bonding_curve_price(curve, 99) == pytest.approx(1.0 + 2.0 * 4.605170186)

    def test_zero_increment_is_flat(self) -> None:
        """A zero increment should keep the initial price."""
        for curve_type in CurveType:
            curve = BondingCurve(
                initial_price=2.0, increment=0.0, max_price=3.0, curve_type=curve_type
            )
            assert bonding_curve_price(curve, 500) == pytest.approx(2.0)

    def test_monotonic_and_bounded(self) -> None:
        """Curve prices should never decrease and never exceed max_price."""
        for curve_type in CurveType:
            curve = BondingCurve(
                initial_price=0.5, increment=0.3, max_price=7.5, curve_type=curve_type
            )
            prices = [bonding_curve_price(curve, s) for s in range(0, 300, 7)]
            assert prices == sorted(prices)
            assert all(0.5 <= p <= 7.5 for p in prices)

    def test_negative_supply(self) -> None:
        """Negative supplies should be rejected."""
        curve = BondingCurve(initial_price=1.0, increment=0.1, max_price=5.0)
        with pytest.raises(MintPricingError):
            bonding_curve_price(curve, -1)


class TestFindActivePhase:
    """Test whitelist phase resolution."""

    def test_window_is_inclusive(self) -> None:
        """Phases should be active at both window edges."""
        phase = make_phase(start_offset=timedelta(0), end_offset=timedelta(0))
        assert find_active_phase([phase], NOW) is phase

    def test_outside_window(self) -> None:
        """Phases should not apply before start or after end."""
        phase = make_phase(start_offset=timedelta(minutes=1), end_offset=timedelta(hours=1))
        assert find_active_phase([phase], NOW) is None

    def test_disabled_phase_skipped(self) -> None:
        """Disabled phases should never be selected."""
        disabled = make_phase("disabled", enabled=False)
        enabled = make_phase("enabled")
        assert find_active_phase([disabled, enabled], NOW) is enabled

    def test_first_match_wins(self) -> None:
        """Overlapping phases should resolve by list order."""
        first = make_phase("first", multiplier=0.8)
        second = make_phase("second", multiplier=0.2)
        assert find_active_phase([first, second], NOW) is first
        assert find_active_phase([second, first], NOW) is second


class TestIsWalletEligible:
    """Test eligibility rules."""

    def test_open(self) -> None:
        """Open phases should accept every wallet."""
        assert is_wallet_eligible(OpenEligibility(), WALLET) is True

    def test_allowlist_case_insensitive(self) -> None:
        """Allow-lists should match addresses regardless of case."""
        rule = AllowListEligibility(frozenset({WALLET.upper().replace("0X", "0x")}))
        assert is_wallet_eligible(rule, WALLET.lower()) is True
        assert is_wallet_eligible(rule, "0x" + "00" * 20) is False

    def test_token_holding_uses_verifier(self) -> None:
        """Token-gated phases should delegate to the verifier."""
        verifier = MagicMock()
        verifier.holds_token.return_value = True
        rule = TokenHoldingEligibility(token_address="0xToken", minimum_balance=2.0)

        assert is_wallet_eligible(rule, WALLET, verifier) is True
        verifier.holds_token.assert_called_once_with(WALLET, "0xToken", 2.0)

    def test_token_holding_without_verifier(self) -> None:
        """Token-gated phases without a verifier should raise."""
        rule = TokenHoldingEligibility(token_address="0xToken")
        with pytest.raises(MintPricingError, match="verifier"):
            is_wallet_eligible(rule, WALLET)


class TestComputeMintPrice:
    """Test the full pricing algorithm."""

    def test_base_price(self) -> None:
        """Without phases or curve the base price should apply."""
        quote = compute_mint_price(CollectionPricingConfig(base_price=100), 0, WALLET, NOW)
        assert quote.price == 100
        assert quote.applied_phase_id is None
        assert quote.curve_applied is False

    def test_whitelist_discount(self) -> None:
        """An eligible wallet in an active phase should get the multiplier."""
        config = CollectionPricingConfig(
            base_price=100, whitelist_phases=(make_phase("early", multiplier=0.5),)
        )

        quote = compute_mint_price(config, 0, WALLET, NOW)

        assert quote.price == 50
        assert quote.applied_phase_id == "early"

    def test_ineligible_wallet_pays_base(self) -> None:
        """Wallets outside the allow-list should pay the base price."""
        phase = make_phase(
            eligibility=AllowListEligibility(frozenset({"0x" + "ff" * 20}))
        )
        config = CollectionPricingConfig(base_price=100, whitelist_phases=(phase,))

        quote = compute_mint_price(config, 0, WALLET, NOW)

        assert quote.price == 100
        assert quote.applied_phase_id is None

    def test_free_mint(self) -> None:
        """A zero multiplier should make the mint free."""
        config = CollectionPricingConfig(
            base_price=100, whitelist_phases=(make_phase(multiplier=0.0),)
        )
        assert compute_mint_price(config, 0, WALLET, NOW).price == 0.0

    def test_expired_phase(self) -> None:
        """Phases whose window has passed should not apply."""
        phase = make_phase(
            start_offset=timedelta(days=-2), end_offset=timedelta(days=-1)
        )
        config = CollectionPricingConfig(base_price=100, whitelist_phases=(phase,))
        assert compute_mint_price(config, 0, WALLET, NOW).price == 100

    def test_curve_overrides_discount(self) -> None:
        """A bonding curve should replace the discounted price."""
        config = CollectionPricingConfig(
            base_price=100,
            bonding_curve=BondingCurve(initial_price=1.0, increment=0.1, max_price=5.0),
            whitelist_phases=(make_phase("early", multiplier=0.5),),
        )

        quote = compute_mint_price(config, 20, WALLET, NOW)

        assert quote.price == pytest.approx(3.0)
        assert quote.curve_applied is True
        assert quote.applied_phase_id == "early"

    def test_curve_clamped(self) -> None:
        """Curve collections should never exceed max_price."""
        config = CollectionPricingConfig(
            base_price=1,
            bonding_curve=BondingCurve(initial_price=1.0, increment=0.1, max_price=5.0),
        )
        assert compute_mint_price(config, 100, WALLET, NOW).price == 5.0

    def test_token_gated_phase(self) -> None:
        """Token holders should get the token-gated discount."""
        verifier = MagicMock()
        verifier.holds_token.side_effect = lambda wallet, token, minimum: wallet == WALLET
        phase = make_phase(
            "holders",
            multiplier=0.25,
            eligibility=TokenHoldingEligibility(token_address="0xToken"),
        )
        config = CollectionPricingConfig(base_price=40, whitelist_phases=(phase,))

        holder = compute_mint_price(config, 0, WALLET, NOW, verifier=verifier)
        other = compute_mint_price(config, 0, "0x" + "22" * 20, NOW, verifier=verifier)

        assert holder.price == 10
        assert other.price == 40

    def test_deterministic(self) -> None:
        """Identical arguments should produce identical quotes."""
        config = CollectionPricingConfig(
            base_price=3,
            bonding_curve=BondingCurve(
                initial_price=1.0,
                increment=0.02,
                max_price=9.0,
                curve_type=CurveType.EXPONENTIAL,
            ),
            whitelist_phases=(make_phase(),),
        )
        quotes = {compute_mint_price(config, 57, WALLET, NOW) for _ in range(5)}
        assert len(quotes) == 1

    def test_naive_time_rejected(self) -> None:
        """A naive ``now`` should be rejected."""
        config = CollectionPricingConfig(base_price=1)
        with pytest.raises(MintPricingError):
            compute_mint_price(config, 0, WALLET, NOW.replace(tzinfo=None))

    def test_negative_supply_rejected(self) -> None:
        """A negative supply should be rejected even without a curve."""
        config = CollectionPricingConfig(base_price=1)
        with pytest.raises(MintPricingError):
            compute_mint_price(config, -5, WALLET, NOW)
