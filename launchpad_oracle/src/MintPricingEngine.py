"""MintPricingEngine: Deterministic price-per-mint computation.

Algorithm:
    1. Start from the collection base price
    2. Find the first enabled whitelist phase whose window contains ``now``
    3. Apply its multiplier if the wallet satisfies the phase eligibility rule
    4. If a bonding curve is configured, recompute the price from the curve at
       the current supply; this replaces (does not multiply) the result of 3
    5. Return the price (never negative, capped at maxPrice when the curve applies)

The override in step 4 means whitelist discounts have no effect on curve
collections. That is the current product behavior and is kept as is.

.. code-block:: python

    >>> curve = BondingCurve(initial_price=1.0, increment=0.1, max_price=5.0)
    >>> bonding_curve_price(curve, 20)
    3.0
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from .PricingConfig import (
    AllowListEligibility,
    BondingCurve,
    CollectionPricingConfig,
    CurveType,
    EligibilityRule,
    EligibilityVerifier,
    OpenEligibility,
    TokenHoldingEligibility,
    WhitelistPhase,
)

logger = logging.getLogger(__name__)


class MintPricingError(Exception):
    """Raised when a mint price cannot be computed for the given arguments."""

    pass


@dataclass(frozen=True)
class MintPriceQuote:
    """Price charged for one mint.

    :ivar price: Price per mint.
    :ivar applied_phase_id: Whitelist phase whose multiplier was applied.
    :ivar curve_applied: True if the bonding curve determined the price.
    """

    price: float
    applied_phase_id: str | None = None
    curve_applied: bool = False


def find_active_phase(
    phases: Sequence[WhitelistPhase], now: datetime
) -> WhitelistPhase | None:
    """Return the first enabled phase whose window contains ``now``.

    Overlapping phases resolve by list order.

    :param phases: Ordered whitelist phases.
    :param now: Timezone-aware current time.
    :returns: Active phase or None.
    """
    for phase in phases:
        if phase.is_active(now):
            return phase
    return None


def bonding_curve_price(curve: BondingCurve, current_supply: int) -> float:
    """Compute the curve price at ``current_supply``, capped at ``max_price``.

    - linear: initial + supply * increment
    - exponential: initial * (1 + increment) ** supply
    - logarithmic: initial + increment * ln(supply + 1)

    :param curve: Bonding curve parameters.
    :param current_supply: Number of items already minted.
    :returns: Curve price.
    :raises MintPricingError: If the supply is negative.
    """
    if current_supply < 0:
        raise MintPricingError(f"current_supply must not be negative, got {current_supply}")

    if curve.curve_type is CurveType.LINEAR:
        price = curve.initial_price + current_supply * curve.increment
    elif curve.curve_type is CurveType.EXPONENTIAL:
        # Compare in log-space first; large supplies would overflow a float
        growth = current_supply * math.log1p(curve.increment)
        if growth >= math.log(curve.max_price / curve.initial_price):
            return curve.max_price
        price = curve.initial_price * math.exp(growth)
    elif curve.curve_type is CurveType.LOGARITHMIC:
        price = curve.initial_price + curve.increment * math.log(current_supply + 1)
    else:
        raise MintPricingError(f"Unsupported curve type {curve.curve_type!r}")

    return min(price, curve.max_price)


def is_wallet_eligible(
    rule: EligibilityRule,
    wallet: str,
    verifier: EligibilityVerifier | None = None,
) -> bool:
    """Check a wallet against a phase eligibility rule.

    :param rule: Eligibility rule of the phase.
    :param wallet: Wallet address.
    :param verifier: Holdings verifier, required for token-gated rules.
    :returns: True if eligible.
    :raises MintPricingError: If a token-gated rule has no verifier.
    """
    if isinstance(rule, OpenEligibility):
        return True
    if isinstance(rule, AllowListEligibility):
        return rule.includes(wallet)
    if isinstance(rule, TokenHoldingEligibility):
        if verifier is None:
            raise MintPricingError(
                f"Token-gated phase requires an eligibility verifier "
                f"(token {rule.token_address})"
            )
        return verifier.holds_token(wallet, rule.token_address, rule.minimum_balance)
    raise MintPricingError(f"Unsupported eligibility rule {rule!r}")


def compute_mint_price(
    config: CollectionPricingConfig,
    current_supply: int,
    wallet: str,
    now: datetime,
    verifier: EligibilityVerifier | None = None,
) -> MintPriceQuote:
    """Compute the price ``wallet`` pays for the next mint.

    Identical arguments always produce the same quote. Errors propagate; there
    is no fallback price.

    :param config: Validated collection pricing config.
    :param current_supply: Number of items already minted.
    :param wallet: Minting wallet address.
    :param now: Timezone-aware current time.
    :param verifier: Holdings verifier for token-gated phases.
    :returns: MintPriceQuote.
    :raises MintPricingError: On invalid arguments.
    """
    if now.tzinfo is None:
        raise MintPricingError("now must be timezone-aware")
    if current_supply < 0:
        raise MintPricingError(f"current_supply must not be negative, got {current_supply}")

    price = config.base_price
    applied_phase_id = None

    phase = find_active_phase(config.whitelist_phases, now)
    if phase is not None and is_wallet_eligible(phase.eligibility, wallet, verifier):
        price *= phase.price_multiplier
        applied_phase_id = phase.id

    curve_applied = False
    if config.bonding_curve is not None:
        price = bonding_curve_price(config.bonding_curve, current_supply)
        curve_applied = True

    logger.debug(
        f"Mint price for {wallet} at supply {current_supply}: {price} "
        f"(phase={applied_phase_id}, curve={curve_applied})"
    )
    return MintPriceQuote(
        price=max(0.0, price),
        applied_phase_id=applied_phase_id,
        curve_applied=curve_applied,
    )
