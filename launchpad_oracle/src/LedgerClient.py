"""LedgerClient: Abstract ledger RPC interface and its Web3 implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from web3 import Web3

if TYPE_CHECKING:
    from eth_typing import ChecksumAddress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainReference:
    """Fresh network state needed to build a transaction.

    :ivar nonce: Next transaction nonce of the sender.
    :ivar gas_price: Current gas price in wei.
    :ivar chain_id: Chain ID the transaction is bound to.
    :ivar block_number: Latest block number when the reference was taken.
    """

    nonce: int
    gas_price: int
    chain_id: int
    block_number: int


@dataclass(frozen=True)
class TxStatus:
    """Confirmation outcome of a broadcast transaction.

    :ivar tx_id: Transaction hash (0x-prefixed hex).
    :ivar success: True if the network executed the transaction successfully.
    :ivar block_number: Block the transaction was included in.
    :ivar error: Error description when unsuccessful.
    """

    tx_id: str
    success: bool
    block_number: int | None = None
    error: str | None = None


class LedgerClient(ABC):
    """Abstract base class for ledger RPC access.

    Provides the three calls the oracle submitter needs: a recent reference,
    raw transaction submission and confirmation.
    """

    @abstractmethod
    def get_recent_reference(self, address: str) -> ChainReference:
        """Fetch a fresh network reference for the sender.

        :param address: Sender address.
        :returns: ChainReference with nonce, gas price and chain id.
        """
        pass

    @abstractmethod
    def submit_transaction(self, raw_transaction: bytes) -> str:
        """Broadcast a signed transaction.

        :param raw_transaction: Signed, serialized transaction.
        :returns: Transaction hash.
        """
        pass

    @abstractmethod
    def confirm(self, tx_id: str) -> TxStatus:
        """Block until the network reports the transaction outcome.

        :param tx_id: Transaction hash returned by submit_transaction().
        :returns: Confirmation status.
        """
        pass


class Web3LedgerClient(LedgerClient):
    """Ledger client backed by a Web3 HTTP provider.

    :ivar w3: Web3 instance.
    :ivar confirm_timeout: Seconds to wait for a receipt.
    """

    def __init__(self, w3: Web3, confirm_timeout: float = 120.0) -> None:
        """Initialize the client.

        :param w3: Connected Web3 instance.
        :param confirm_timeout: Receipt wait bound in seconds (default: 120, as web3).
        """
        self.w3 = w3
        self.confirm_timeout = confirm_timeout

    def get_recent_reference(self, address: str) -> ChainReference:
        checksum: ChecksumAddress = Web3.to_checksum_address(address)
        return ChainReference(
            nonce=self.w3.eth.get_transaction_count(checksum, "pending"),
            gas_price=self.w3.eth.gas_price,
            chain_id=self.w3.eth.chain_id,
            block_number=self.w3.eth.block_number,
        )

    def submit_transaction(self, raw_transaction: bytes) -> str:
        tx_hash = self.w3.eth.send_raw_transaction(raw_transaction)
        return Web3.to_hex(tx_hash)

    def confirm(self, tx_id: str) -> TxStatus:
        tx_receipt = self.w3.eth.wait_for_transaction_receipt(
            tx_id, timeout=self.confirm_timeout
        )

        if tx_receipt["status"] == 1:
            return TxStatus(
                tx_id=tx_id, success=True, block_number=tx_receipt["blockNumber"]
            )
        return TxStatus(
            tx_id=tx_id,
            success=False,
            block_number=tx_receipt.get("blockNumber"),
            error="transaction reverted",
        )
