"""ContractUtility: Web3 initialization, ABI loading and oracle key derivation."""

import json
import logging
import os
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from sapphirepy import sapphire
from web3 import Web3

logger = logging.getLogger(__name__)

NETWORKS: dict[str, str] = {
    "localnet": "http://localhost:8545",
    "sapphire": "https://sapphire.oasis.io",
    "sapphire-testnet": "https://testnet.sapphire.oasis.io",
}

# Well-known development account funded on local test nodes
LOCALNET_AUTHORITY_KEY = (
    "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
)


class ContractUtility:
    """Utility for Web3 connection and contract ABI loading.

    :ivar network: Resolved RPC URL.
    :ivar w3: Configured Web3 instance (Sapphire-wrapped on Sapphire networks).
    """

    def __init__(self, network_name: str, rpc_url: str | None = None) -> None:
        """Initialize the contract utility.

        :param network_name: Name of the network to connect to.
        :param rpc_url: Optional RPC URL overriding the network default.
        """
        # RPC_URL env var overrides the default for the network
        self.network = (
            rpc_url
            or os.environ.get("RPC_URL")
            or NETWORKS.get(network_name, network_name)
        )

        self.w3 = Web3(Web3.HTTPProvider(self.network))
        if network_name.startswith("sapphire"):
            self.w3 = sapphire.wrap(self.w3)
        logger.debug(f"Connected Web3 provider for {network_name} at {self.network}")

    @staticmethod
    def get_contract(contract_name: str) -> list:
        """Load the ABI of a contract bundled in the abi folder.

        :param contract_name: Name of the contract (e.g., "PriceOracle").
        :returns: Contract ABI.
        """
        output_path = (
            Path(__file__).parent.parent / "abi" / f"{contract_name}.json"
        ).resolve()

        with open(output_path, "r") as file:
            contract_data = json.load(file)

        return contract_data["abi"]


def derive_oracle_key(oracle_address: str, seed: str) -> bytes:
    """Derive the deterministic feed key of the oracle account.

    The key format matches the contract's storage scheme:
        keccak256(lowercase_oracle_address/seed)

    :param oracle_address: Address of the oracle contract.
    :param seed: Seed identifying the price feed (e.g., "price_oracle").
    :returns: 32-byte keccak256 hash.

    .. code-block:: python

        >>> key = derive_oracle_key("0x5FbDB2315678afecb367f032d93F642f64180aa3", "price_oracle")
        >>> len(key)
        32
    """
    return bytes(Web3.keccak(text=f"{oracle_address.lower()}/{seed}"))


def load_authority(authority_key: str | None, network_name: str) -> LocalAccount:
    """Load the account authorized to update the oracle.

    :param authority_key: Hex private key, or None.
    :param network_name: Network name; localnet falls back to the dev account.
    :returns: Signing account.
    :raises ValueError: If no key is configured for a non-local network.
    """
    if authority_key:
        return Account.from_key(authority_key)
    if network_name == "localnet":
        logger.warning("No authority key configured, using localnet development key")
        return Account.from_key(LOCALNET_AUTHORITY_KEY)
    raise ValueError(f"An authority key is required on network {network_name}")
