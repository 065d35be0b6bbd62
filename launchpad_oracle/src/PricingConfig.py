"""PricingConfig: Validated pricing configuration of an NFT collection.

A collection has a base price, an ordered list of time-windowed whitelist
phases and an optional bonding curve. Everything is validated when the config
is built or loaded, so the pricing engine never has to guess at a bad value.

JSON shape (camelCase, as stored by the collection admin tools):

.. code-block:: json

    {
      "basePrice": 100,
      "bondingCurve": {"initialPrice": 1.0, "increment": 0.1,
                       "maxPrice": 5.0, "curveType": "linear"},
      "whitelistPhases": [
        {"id": "early", "startTime": "2026-01-01T00:00:00Z",
         "endTime": "2026-01-02T00:00:00Z", "enabled": true,
         "priceMultiplier": 0.5,
         "eligibility": {"kind": "allowlist", "addresses": ["0xabc..."]}}
      ]
    }
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, Union


class InvalidConfigError(ValueError):
    """Raised when a collection pricing config is missing or has invalid fields."""

    pass


class CurveType(str, Enum):
    """Supported bonding curve shapes."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    LOGARITHMIC = "logarithmic"


class EligibilityVerifier(Protocol):
    """External check of token/NFT holdings used by token-gated phases."""

    def holds_token(
        self, wallet: str, token_address: str, minimum_balance: float
    ) -> bool:
        """Return True if ``wallet`` holds at least ``minimum_balance`` of the token."""
        ...


def _require_number(data: dict, key: str, context: str) -> float:
    if key not in data or data[key] is None:
        raise InvalidConfigError(f"{context}: missing required field '{key}'")
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigError(f"{context}: field '{key}' must be a number")
    if not math.isfinite(value):
        raise InvalidConfigError(f"{context}: field '{key}' must be finite")
    return float(value)


def parse_time(value: Any, context: str) -> datetime:
    """Parse an ISO-8601 string or unix timestamp into an aware datetime.

    Naive ISO strings are interpreted as UTC.

    :param value: ISO-8601 string, unix seconds, or datetime.
    :param context: Field description for error messages.
    :returns: Timezone-aware datetime.
    :raises InvalidConfigError: If the value cannot be parsed.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidConfigError(f"{context}: invalid time '{value}'") from e
    else:
        raise InvalidConfigError(f"{context}: missing or invalid time {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class BondingCurve:
    """Supply-driven price formula.

    :ivar initial_price: Price at supply 0.
    :ivar increment: Growth parameter (absolute for linear/logarithmic,
        rate for exponential).
    :ivar max_price: Cap applied to every curve price.
    :ivar curve_type: Curve shape.
    """

    initial_price: float
    increment: float
    max_price: float
    curve_type: CurveType = CurveType.LINEAR

    def __post_init__(self) -> None:
        if not self.initial_price > 0:
            raise InvalidConfigError("bondingCurve: initialPrice must be positive")
        if not math.isfinite(self.increment) or self.increment < 0:
            raise InvalidConfigError("bondingCurve: increment must not be negative")
        if not self.max_price > 0:
            raise InvalidConfigError("bondingCurve: maxPrice must be positive")
        if self.max_price < self.initial_price:
            raise InvalidConfigError("bondingCurve: maxPrice must be >= initialPrice")
        try:
            object.__setattr__(self, "curve_type", CurveType(self.curve_type))
        except ValueError as e:
            raise InvalidConfigError(
                f"bondingCurve: unknown curveType {self.curve_type!r}"
            ) from e

    @classmethod
    def from_dict(cls, data: dict) -> BondingCurve:
        if not isinstance(data, dict):
            raise InvalidConfigError("bondingCurve must be an object")
        return cls(
            initial_price=_require_number(data, "initialPrice", "bondingCurve"),
            increment=_require_number(data, "increment", "bondingCurve"),
            max_price=_require_number(data, "maxPrice", "bondingCurve"),
            curve_type=data.get("curveType", CurveType.LINEAR.value),
        )

    def to_dict(self) -> dict:
        return {
            "initialPrice": self.initial_price,
            "increment": self.increment,
            "maxPrice": self.max_price,
            "curveType": self.curve_type.value,
        }


@dataclass(frozen=True)
class OpenEligibility:
    """Every wallet is eligible."""

    kind = "open"

    def to_dict(self) -> dict:
        return {"kind": self.kind}


@dataclass(frozen=True)
class AllowListEligibility:
    """Wallets on an address allow-list are eligible (case-insensitive)."""

    addresses: frozenset[str]

    kind = "allowlist"

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "addresses", frozenset(a.lower() for a in self.addresses)
        )

    def includes(self, wallet: str) -> bool:
        return wallet.lower() in self.addresses

    def to_dict(self) -> dict:
        return {"kind": self.kind, "addresses": sorted(self.addresses)}


@dataclass(frozen=True)
class TokenHoldingEligibility:
    """Wallets holding a minimum balance of a token or NFT are eligible.

    The holding check is delegated to an EligibilityVerifier.
    """

    token_address: str
    minimum_balance: float = 1.0

    kind = "token"

    def __post_init__(self) -> None:
        if not self.token_address:
            raise InvalidConfigError("eligibility: tokenAddress is required")
        if not self.minimum_balance > 0:
            raise InvalidConfigError("eligibility: minimumBalance must be positive")

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "tokenAddress": self.token_address,
            "minimumBalance": self.minimum_balance,
        }


EligibilityRule = Union[OpenEligibility, AllowListEligibility, TokenHoldingEligibility]


def eligibility_from_dict(data: Any) -> EligibilityRule:
    """Build an eligibility rule from its JSON form.

    :param data: Dict with a ``kind`` of "open", "allowlist" or "token".
    :returns: Matching eligibility rule.
    :raises InvalidConfigError: If the kind is unknown or fields are missing.
    """
    if data is None:
        return OpenEligibility()
    if not isinstance(data, dict):
        raise InvalidConfigError("eligibility must be an object")

    kind = data.get("kind")
    if kind == OpenEligibility.kind:
        return OpenEligibility()
    if kind == AllowListEligibility.kind:
        addresses = data.get("addresses")
        if not isinstance(addresses, list) or not all(isinstance(a, str) for a in addresses):
            raise InvalidConfigError("eligibility: addresses must be a list of strings")
        return AllowListEligibility(frozenset(addresses))
    if kind == TokenHoldingEligibility.kind:
        return TokenHoldingEligibility(
            token_address=data.get("tokenAddress", ""),
            minimum_balance=(
                _require_number(data, "minimumBalance", "eligibility")
                if "minimumBalance" in data
                else 1.0
            ),
        )
    raise InvalidConfigError(f"eligibility: unknown kind {kind!r}")


@dataclass(frozen=True)
class WhitelistPhase:
    """Time-windowed discount for eligible wallets.

    :ivar id: Phase identifier, unique within a collection.
    :ivar start_time: Window start (inclusive).
    :ivar end_time: Window end (inclusive).
    :ivar enabled: Disabled phases never apply.
    :ivar price_multiplier: 0 = free, 1 = full price.
    :ivar eligibility: Rule deciding which wallets get the multiplier.
    """

    id: str
    start_time: datetime
    end_time: datetime
    enabled: bool = True
    price_multiplier: float = 1.0
    eligibility: EligibilityRule = field(default_factory=OpenEligibility)

    def __post_init__(self) -> None:
        context = f"whitelistPhase '{self.id}'"
        if not self.id:
            raise InvalidConfigError("whitelistPhase: id is required")
        if self.start_time.tzinfo is None or self.end_time.tzinfo is None:
            raise InvalidConfigError(f"{context}: times must be timezone-aware")
        if self.end_time < self.start_time:
            raise InvalidConfigError(f"{context}: endTime is before startTime")
        if not 0 <= self.price_multiplier <= 1:
            raise InvalidConfigError(f"{context}: priceMultiplier must be within [0, 1]")

    def is_active(self, now: datetime) -> bool:
        return self.enabled and self.start_time <= now <= self.end_time

    @classmethod
    def from_dict(cls, data: dict) -> WhitelistPhase:
        if not isinstance(data, dict):
            raise InvalidConfigError("whitelistPhase must be an object")
        phase_id = data.get("id")
        if not isinstance(phase_id, str) or not phase_id:
            raise InvalidConfigError("whitelistPhase: id is required")
        context = f"whitelistPhase '{phase_id}'"
        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise InvalidConfigError(f"{context}: enabled must be true or false")
        return cls(
            id=phase_id,
            start_time=parse_time(data.get("startTime"), f"{context} startTime"),
            end_time=parse_time(data.get("endTime"), f"{context} endTime"),
            enabled=enabled,
            price_multiplier=_require_number(data, "priceMultiplier", context),
            eligibility=eligibility_from_dict(data.get("eligibility")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "startTime": _format_time(self.start_time),
            "endTime": _format_time(self.end_time),
            "enabled": self.enabled,
            "priceMultiplier": self.price_multiplier,
            "eligibility": self.eligibility.to_dict(),
        }


@dataclass(frozen=True)
class CollectionPricingConfig:
    """Pricing economics of a collection.

    :ivar base_price: Price per mint before discounts.
    :ivar bonding_curve: Optional supply-driven curve (overrides base price).
    :ivar whitelist_phases: Ordered phases; the first active one applies.
    """

    base_price: float
    bonding_curve: BondingCurve | None = None
    whitelist_phases: tuple[WhitelistPhase, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.base_price, bool) or not isinstance(self.base_price, (int, float)):
            raise InvalidConfigError("basePrice must be a number")
        if not self.base_price > 0 or not math.isfinite(self.base_price):
            raise InvalidConfigError("basePrice must be positive")
        object.__setattr__(self, "whitelist_phases", tuple(self.whitelist_phases))

        seen: set[str] = set()
        for phase in self.whitelist_phases:
            if phase.id in seen:
                raise InvalidConfigError(f"Duplicate whitelist phase id '{phase.id}'")
            seen.add(phase.id)

    @classmethod
    def from_dict(cls, data: dict) -> CollectionPricingConfig:
        """Build and validate a config from its JSON form.

        :param data: Decoded JSON object.
        :returns: Validated CollectionPricingConfig.
        :raises InvalidConfigError: If any field is missing or invalid.
        """
        if not isinstance(data, dict):
            raise InvalidConfigError("Pricing config must be an object")

        curve_data = data.get("bondingCurve")
        phases_data = data.get("whitelistPhases") or []
        if not isinstance(phases_data, list):
            raise InvalidConfigError("whitelistPhases must be a list")

        return cls(
            base_price=_require_number(data, "basePrice", "pricing config"),
            bonding_curve=(
                BondingCurve.from_dict(curve_data) if curve_data is not None else None
            ),
            whitelist_phases=tuple(WhitelistPhase.from_dict(p) for p in phases_data),
        )

    def to_dict(self) -> dict:
        data: dict = {
            "basePrice": self.base_price,
            "whitelistPhases": [p.to_dict() for p in self.whitelist_phases],
        }
        if self.bonding_curve is not None:
            data["bondingCurve"] = self.bonding_curve.to_dict()
        return data
