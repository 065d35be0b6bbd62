"""OracleConfig: Validated configuration for the oracle automation.

The configuration is immutable. Updates build a new validated instance which
the scheduler swaps in atomically, so a half-applied update is never observed.

.. code-block:: python

    >>> config = AutomationConfig(update_threshold_percent=2.0)
    >>> config.check_interval_seconds
    60.0
    >>> config.replace(check_interval_ms=30000).check_interval_seconds
    30.0
"""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_CHECK_INTERVAL_MS = 60_000
DEFAULT_UPDATE_THRESHOLD_PERCENT = 1.0
DEFAULT_MIN_TIME_BETWEEN_UPDATES_MS = 300_000
DEFAULT_MAX_CONSECUTIVE_ERRORS = 5
DEFAULT_ORACLE_SEED = "price_oracle"
DEFAULT_NETWORK = "localnet"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def parse_bool(value: str) -> bool:
    """Parse a boolean flag from an environment-style string.

    :param value: String such as "true", "0", "yes".
    :returns: Parsed boolean.
    :raises ValueError: If the string is not a recognized boolean.
    """
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value '{value}'")


@dataclass(frozen=True)
class AutomationConfig:
    """Configuration of the oracle reconciliation loop.

    :ivar enabled: Whether start() is allowed to run the loop.
    :ivar check_interval_ms: Milliseconds between price checks.
    :ivar update_threshold_percent: Minimum price move that qualifies for an update.
    :ivar min_time_between_updates_ms: Cooldown between on-chain updates.
    :ivar max_consecutive_errors: Failures tolerated before the loop stops itself.
    :ivar oracle_seed: Seed used to derive the oracle feed key.
    :ivar oracle_address: Address of the on-chain oracle contract.
    :ivar authority_key: Hex private key of the update authority.
    :ivar rpc_url: Optional RPC endpoint overriding the network default.
    :ivar network: Network name (localnet, sapphire, sapphire-testnet).
    """

    enabled: bool = True
    check_interval_ms: int = DEFAULT_CHECK_INTERVAL_MS
    update_threshold_percent: float = DEFAULT_UPDATE_THRESHOLD_PERCENT
    min_time_between_updates_ms: int = DEFAULT_MIN_TIME_BETWEEN_UPDATES_MS
    max_consecutive_errors: int = DEFAULT_MAX_CONSECUTIVE_ERRORS
    oracle_seed: str = DEFAULT_ORACLE_SEED
    oracle_address: str | None = None
    authority_key: str | None = dataclasses.field(default=None, repr=False)
    rpc_url: str | None = None
    network: str = DEFAULT_NETWORK

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Validate numeric fields.

        :raises ValueError: If any field is out of range.
        """
        if self.check_interval_ms <= 0:
            raise ValueError("check_interval_ms must be positive")
        if self.update_threshold_percent < 0:
            raise ValueError("update_threshold_percent must not be negative")
        if self.min_time_between_updates_ms < 0:
            raise ValueError("min_time_between_updates_ms must not be negative")
        if self.max_consecutive_errors < 1:
            raise ValueError("max_consecutive_errors must be at least 1")
        if not self.oracle_seed:
            raise ValueError("oracle_seed must not be empty")

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_ms / 1000

    @property
    def min_time_between_updates_seconds(self) -> float:
        return self.min_time_between_updates_ms / 1000

    def replace(self, **changes) -> AutomationConfig:
        """Return a new validated config with the given fields replaced.

        :param changes: Field values to change.
        :returns: New AutomationConfig.
        :raises ValueError: If the resulting config is invalid.
        """
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AutomationConfig:
        """Build a config from environment variables.

        Unset variables keep their defaults.

        :param environ: Mapping to read from (default: os.environ).
        :returns: Validated AutomationConfig.
        :raises ValueError: If a variable cannot be parsed or is out of range.
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}

        if env.get("ENABLED"):
            kwargs["enabled"] = parse_bool(env["ENABLED"])
        if env.get("CHECK_INTERVAL_MS"):
            kwargs["check_interval_ms"] = int(env["CHECK_INTERVAL_MS"])
        if env.get("UPDATE_THRESHOLD_PERCENT"):
            kwargs["update_threshold_percent"] = float(env["UPDATE_THRESHOLD_PERCENT"])
        if env.get("MIN_TIME_BETWEEN_UPDATES_MS"):
            kwargs["min_time_between_updates_ms"] = int(
                env["MIN_TIME_BETWEEN_UPDATES_MS"]
            )
        if env.get("MAX_CONSECUTIVE_ERRORS"):
            kwargs["max_consecutive_errors"] = int(env["MAX_CONSECUTIVE_ERRORS"])
        for field_name in ("oracle_seed", "oracle_address", "authority_key", "rpc_url", "network"):
            value = env.get(field_name.upper())
            if value:
                kwargs[field_name] = value

        return cls(**kwargs)
