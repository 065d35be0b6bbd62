"""Unit tests for OracleUpdateSubmitter and LedgerClient."""

from unittest.mock import MagicMock

import pytest
from eth_account import Account
from web3 import Web3

from launchpad_oracle.src.ContractUtility import LOCALNET_AUTHORITY_KEY
from launchpad_oracle.src.LedgerClient import (
    ChainReference,
    LedgerClient,
    TxStatus,
    Web3LedgerClient,
)
from launchpad_oracle.src.OracleConfig import AutomationConfig
from launchpad_oracle.src.OracleUpdateSubmitter import (
    OracleUpdateSubmitter,
    TransactionConfirmError,
    TransactionSubmitError,
    build_submitter,
    to_fixed_point,
)

ORACLE_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
ORACLE_KEY = b"\x01" * 32


def make_contract() -> MagicMock:
    """Contract mock whose updatePrice() builds a signable legacy transaction."""
    contract = MagicMock()
    contract.functions.updatePrice.return_value.build_transaction.side_effect = (
        lambda fields: {
            "to": ORACLE_ADDRESS,
            "value": 0,
            "gas": 100_000,
            "gasPrice": fields["gasPrice"],
            "nonce": fields["nonce"],
            "chainId": fields["chainId"],
            "data": "0x1234",
        }
    )
    return contract


def make_ledger(success: bool = True) -> MagicMock:
    ledger = MagicMock(spec=LedgerClient)
    ledger.get_recent_reference.return_value = ChainReference(
        nonce=7, gas_price=10**9, chain_id=31337, block_number=100
    )
    ledger.submit_transaction.return_value = "0xabc"
    ledger.confirm.return_value = TxStatus(
        tx_id="0xabc",
        success=success,
        block_number=101,
        error=None if success else "transaction reverted",
    )
    return ledger


def make_submitter(ledger=None, contract=None, **kwargs) -> OracleUpdateSubmitter:
    return OracleUpdateSubmitter(
        ledger=ledger or make_ledger(),
        contract=contract or make_contract(),
        authority=Account.from_key(LOCALNET_AUTHORITY_KEY),
        oracle_key=ORACLE_KEY,
        **kwargs,
    )


class TestToFixedPoint:
    """Test decimal to fixed-point conversion."""

    def test_six_decimals(self) -> None:
        """Prices should be scaled by 10**6."""
        assert to_fixed_point(1.02) == 1_020_000
        assert to_fixed_point(0.5) == 500_000

    def test_rounds_down(self) -> None:
        """Extra precision should be truncated, never rounded up."""
        assert to_fixed_point(1.0234567) == 1_023_456
        assert to_fixed_point(0.0000009) == 0


class TestOracleUpdateSubmitter:
    """Test submit() against mocked ledger and contract."""

    def test_submit_success(self) -> None:
        """A confirmed update should return the transaction details."""
        ledger = make_ledger()
        contract = make_contract()
        submitter = make_submitter(ledger, contract)

        result = submitter.submit(1.02)

        assert result.tx_id == "0xabc"
        assert result.price == 1.02
        assert result.price_scaled == 1_020_000
        assert result.block_number == 101
        contract.functions.updatePrice.assert_called_once_with(ORACLE_KEY, 1_020_000)
        ledger.confirm.assert_called_once_with("0xabc")

    def test_transaction_fields(self) -> None:
        """The transaction should use the fresh reference and the authority."""
        ledger = make_ledger()
        contract = make_contract()
        submitter = make_submitter(ledger, contract)

        submitter.submit(1.5)

        authority = Account.from_key(LOCALNET_AUTHORITY_KEY)
        ledger.get_recent_reference.assert_called_once_with(authority.address)
        build = contract.functions.updatePrice.return_value.build_transaction
        build.assert_called_once_with(
            {
                "from": authority.address,
                "nonce": 7,
                "gasPrice": 10**9,
                "chainId": 31337,
            }
        )
        raw = ledger.submit_transaction.call_args.args[0]
        assert isinstance(raw, bytes)
        assert len(raw) > 0

    def test_gas_limit(self) -> None:
        """A fixed gas limit should be passed to the transaction."""
        contract = make_contract()
        make_submitter(contract=contract, gas_limit=80_000).submit(1.0)

        build = contract.functions.updatePrice.return_value.build_transaction
        assert build.call_args.args[0]["gas"] == 80_000

    def test_non_positive_scaled_price(self) -> None:
        """Prices that scale to zero should never be sent."""
        ledger = make_ledger()
        with pytest.raises(TransactionSubmitError):
            make_submitter(ledger).submit(0.0000001)
        ledger.get_recent_reference.assert_not_called()

    @pytest.mark.parametrize("price", [float("inf"), float("nan")])
    def test_non_finite_price(self, price) -> None:
        """Non-finite prices should fail as a submit error, never overflow."""
        ledger = make_ledger()
        with pytest.raises(TransactionSubmitError, match="not finite"):
            make_submitter(ledger).submit(price)
        ledger.get_recent_reference.assert_not_called()

    def test_reference_failure(self) -> None:
        """RPC failures before broadcast should raise TransactionSubmitError."""
        ledger = make_ledger()
        ledger.get_recent_reference.side_effect = ConnectionError("rpc down")

        with pytest.raises(TransactionSubmitError, match="rpc down"):
            make_submitter(ledger).submit(1.0)
        ledger.submit_transaction.assert_not_called()

    def test_broadcast_failure(self) -> None:
        """A rejected broadcast should raise TransactionSubmitError."""
        ledger = make_ledger()
        ledger.submit_transaction.side_effect = ValueError("nonce too low")

        with pytest.raises(TransactionSubmitError):
            make_submitter(ledger).submit(1.0)
        ledger.confirm.assert_not_called()

    def test_reverted_transaction(self) -> None:
        """A reverted transaction should raise TransactionConfirmError."""
        with pytest.raises(TransactionConfirmError) as exc_info:
            make_submitter(make_ledger(success=False)).submit(1.0)
        assert exc_info.value.tx_id == "0xabc"
        assert "reverted" in str(exc_info.value)

    def test_confirmation_timeout(self) -> None:
        """A confirmation failure should raise TransactionConfirmError."""
        ledger = make_ledger()
        ledger.confirm.side_effect = TimeoutError("no receipt")

        with pytest.raises(TransactionConfirmError) as exc_info:
            make_submitter(ledger).submit(1.0)
        assert exc_info.value.tx_id == "0xabc"


class TestWeb3LedgerClient:
    """Test Web3LedgerClient against a mocked Web3 instance."""

    def test_recent_reference(self) -> None:
        """The reference should use the pending nonce."""
        w3 = MagicMock()
        w3.eth.get_transaction_count.return_value = 3
        w3.eth.gas_price = 100
        w3.eth.chain_id = 23295
        w3.eth.block_number = 42

        reference = Web3LedgerClient(w3).get_recent_reference(ORACLE_ADDRESS.lower())

        assert reference == ChainReference(
            nonce=3, gas_price=100, chain_id=23295, block_number=42
        )
        w3.eth.get_transaction_count.assert_called_once_with(ORACLE_ADDRESS, "pending")

    def test_submit_returns_hex(self) -> None:
        """The transaction hash should be returned as 0x-prefixed hex."""
        w3 = MagicMock()
        w3.eth.send_raw_transaction.return_value = b"\x12\x34"

        assert Web3LedgerClient(w3).submit_transaction(b"raw") == "0x1234"

    def test_confirm_success(self) -> None:
        """Status 1 receipts should be successful."""
        w3 = MagicMock()
        w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 1,
            "blockNumber": 55,
        }

        status = Web3LedgerClient(w3, confirm_timeout=10).confirm("0xabc")

        assert status == TxStatus(tx_id="0xabc", success=True, block_number=55)
        w3.eth.wait_for_transaction_receipt.assert_called_once_with("0xabc", timeout=10)

    def test_confirm_reverted(self) -> None:
        """Status 0 receipts should be reported as reverted."""
        w3 = MagicMock()
        w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 0,
            "blockNumber": 56,
        }

        status = Web3LedgerClient(w3).confirm("0xabc")

        assert status.success is False
        assert status.error == "transaction reverted"


class TestBuildSubmitter:
    """Test submitter wiring."""

    def test_requires_oracle_address(self) -> None:
        """A missing oracle address should be rejected."""
        with pytest.raises(ValueError, match="oracle_address"):
            build_submitter(AutomationConfig())

    def test_wires_localnet(self) -> None:
        """A localnet config should build without contacting the node."""
        config = AutomationConfig(oracle_address=ORACLE_ADDRESS.lower())

        submitter = build_submitter(config)

        assert submitter.contract.address == Web3.to_checksum_address(ORACLE_ADDRESS)
        assert len(submitter.oracle_key) == 32
        assert submitter.authority.address == Account.from_key(
            LOCALNET_AUTHORITY_KEY
        ).address
        assert isinstance(submitter.ledger, Web3LedgerClient)
