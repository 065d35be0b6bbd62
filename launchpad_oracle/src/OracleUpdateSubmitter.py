"""OracleUpdateSubmitter: Builds, signs, broadcasts and confirms price updates.

One call to submit() produces at most one on-chain ``updatePrice`` transaction.
There is no retry here; the scheduler's next tick is the retry mechanism.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from web3 import Web3

from .ContractUtility import ContractUtility, derive_oracle_key, load_authority
from .LedgerClient import LedgerClient, Web3LedgerClient

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount
    from web3.contract import Contract

    from .OracleConfig import AutomationConfig

logger = logging.getLogger(__name__)

# Number of decimals stored on-chain (micro-USD).
PRICE_DECIMALS = 6


def to_fixed_point(price: float) -> int:
    """Convert a decimal price to the on-chain fixed-point integer (floor).

    :param price: Price in USD.
    :returns: Price scaled by 10**PRICE_DECIMALS, rounded down.

    .. code-block:: python

        >>> to_fixed_point(1.0234567)
        1023456
    """
    return math.floor(price * 10**PRICE_DECIMALS)


class TransactionError(Exception):
    """Base exception for oracle update transaction failures."""

    pass


class TransactionSubmitError(TransactionError):
    """Raised when the update could not be built, signed or broadcast."""

    pass


class TransactionConfirmError(TransactionError):
    """Raised when a broadcast update failed or could not be confirmed.

    :ivar tx_id: Hash of the broadcast transaction.
    """

    def __init__(self, tx_id: str, message: str):
        self.tx_id = tx_id
        super().__init__(f"Transaction {tx_id} failed: {message}")


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of a confirmed price update.

    :ivar tx_id: Transaction hash.
    :ivar price: Submitted price in USD.
    :ivar price_scaled: Fixed-point value written on-chain.
    :ivar block_number: Block containing the update.
    """

    tx_id: str
    price: float
    price_scaled: int
    block_number: int | None


class OracleUpdateSubmitter:
    """Submits authority-signed price updates to the oracle contract.

    :ivar ledger: Ledger client used for references, broadcast and confirmation.
    :ivar contract: Oracle contract instance.
    :ivar authority: Account authorized to update the oracle.
    :ivar oracle_key: 32-byte feed key derived from the oracle seed.
    :ivar gas_limit: Optional fixed gas limit (estimated by the node when None).
    """

    def __init__(
        self,
        ledger: LedgerClient,
        contract: Contract,
        authority: LocalAccount,
        oracle_key: bytes,
        gas_limit: int | None = None,
    ) -> None:
        self.ledger = ledger
        self.contract = contract
        self.authority = authority
        self.oracle_key = oracle_key
        self.gas_limit = gas_limit

    def submit(self, price: float) -> SubmitResult:
        """Push a new price to the oracle and wait for confirmation.

        :param price: New price in USD.
        :returns: SubmitResult of the confirmed transaction.
        :raises TransactionSubmitError: If building, signing or broadcasting fails.
        :raises TransactionConfirmError: If the transaction reverted or confirmation failed.
        """
        if not math.isfinite(price):
            raise TransactionSubmitError(f"Price {price} is not finite")
        price_scaled = to_fixed_point(price)
        if price_scaled <= 0:
            raise TransactionSubmitError(
                f"Price {price} scales to non-positive value {price_scaled}"
            )

        try:
            reference = self.ledger.get_recent_reference(self.authority.address)
            tx_fields = {
                "from": self.authority.address,
                "nonce": reference.nonce,
                "gasPrice": reference.gas_price,
                "chainId": reference.chain_id,
            }
            if self.gas_limit is not None:
                tx_fields["gas"] = self.gas_limit

            tx_params = self.contract.functions.updatePrice(
                self.oracle_key, price_scaled
            ).build_transaction(tx_fields)
            signed = self.authority.sign_transaction(tx_params)
            tx_id = self.ledger.submit_transaction(signed.raw_transaction)
        except Exception as e:
            raise TransactionSubmitError(f"Failed to submit price update: {e}") from e

        logger.info(
            f"Oracle update sent: tx={tx_id}, price=${price:.6f} "
            f"(scaled={price_scaled}, nonce={reference.nonce})"
        )

        try:
            status = self.ledger.confirm(tx_id)
        except Exception as e:
            raise TransactionConfirmError(tx_id, f"confirmation failed: {e}") from e

        if not status.success:
            raise TransactionConfirmError(tx_id, status.error or "unknown error")

        logger.info(f"Oracle update confirmed: tx={tx_id}, block={status.block_number}")
        return SubmitResult(
            tx_id=tx_id,
            price=price,
            price_scaled=price_scaled,
            block_number=status.block_number,
        )


def build_submitter(config: AutomationConfig) -> OracleUpdateSubmitter:
    """Wire an OracleUpdateSubmitter from the automation configuration.

    :param config: Automation configuration.
    :returns: Submitter connected to the configured network.
    :raises ValueError: If the oracle address or authority key is missing.
    """
    if not config.oracle_address:
        raise ValueError("oracle_address must be configured")

    contract_utility = ContractUtility(config.network, rpc_url=config.rpc_url)
    w3 = contract_utility.w3
    abi = ContractUtility.get_contract("PriceOracle")

    contract = w3.eth.contract(
        address=Web3.to_checksum_address(config.oracle_address), abi=abi
    )
    authority = load_authority(config.authority_key, config.network)
    oracle_key = derive_oracle_key(config.oracle_address, config.oracle_seed)

    logger.info(
        f"Oracle submitter ready: oracle={contract.address}, "
        f"authority={authority.address}, feed_key=0x{oracle_key.hex()}"
    )
    return OracleUpdateSubmitter(
        ledger=Web3LedgerClient(w3),
        contract=contract,
        authority=authority,
        oracle_key=oracle_key,
    )
