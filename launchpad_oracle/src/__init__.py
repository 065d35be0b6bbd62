"""
Launchpad Price Oracle - Oracle Reconciliation and Mint Pricing

This module provides:
- PriceSourceAggregator: First-success fallback over prioritized price sources
- OracleReconciliationScheduler: Threshold/cooldown control loop
- OracleUpdateSubmitter: Signed on-chain price updates
- MintPricingEngine: Deterministic mint price (whitelist phases, bonding curves)
- sources: Modular price source implementations
"""

from .MintPricingEngine import MintPriceQuote, MintPricingError, compute_mint_price
from .OracleConfig import AutomationConfig
from .OracleScheduler import (
    AutomationStatus,
    FatalAutomationError,
    OracleReconciliationScheduler,
    ReconciliationState,
    SchedulerState,
    UpdateDecision,
)
from .OracleUpdateSubmitter import (
    PRICE_DECIMALS,
    OracleUpdateSubmitter,
    TransactionConfirmError,
    TransactionSubmitError,
)
from .PriceSourceAggregator import AllSourcesFailedError, PriceQuote, PriceSourceAggregator
from .PricingConfig import CollectionPricingConfig, InvalidConfigError
from .PricingConfigStore import PricingConfigStore

__all__ = [
    "AllSourcesFailedError",
    "AutomationConfig",
    "AutomationStatus",
    "CollectionPricingConfig",
    "FatalAutomationError",
    "InvalidConfigError",
    "MintPriceQuote",
    "MintPricingError",
    "OracleReconciliationScheduler",
    "OracleUpdateSubmitter",
    "PRICE_DECIMALS",
    "PriceQuote",
    "PriceSourceAggregator",
    "PricingConfigStore",
    "ReconciliationState",
    "SchedulerState",
    "TransactionConfirmError",
    "TransactionSubmitError",
    "UpdateDecision",
    "compute_mint_price",
]
