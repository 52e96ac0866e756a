"""Reusable Web3 client manager for token contract reads and signed writes."""

import json
import logging
from typing import Any, Dict, List, Optional

from web3 import Web3


logger = logging.getLogger(__name__)


def _abi_function(name: str, inputs: List[Dict[str, str]], outputs: List[Dict[str, str]], mutability: str) -> dict:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs,
        "stateMutability": mutability,
    }


# Minimal ABI of a mintable/burnable ERC-20 owned by the ledger signer.
DEFAULT_TOKEN_ABI: List[dict] = [
    _abi_function(
        "mint",
        [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        [],
        "nonpayable",
    ),
    _abi_function(
        "burn",
        [{"name": "from", "type": "address"}, {"name": "amount", "type": "uint256"}],
        [],
        "nonpayable",
    ),
    _abi_function(
        "balanceOf",
        [{"name": "account", "type": "address"}],
        [{"name": "", "type": "uint256"}],
        "view",
    ),
    _abi_function(
        "transfer",
        [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        [{"name": "", "type": "bool"}],
        "nonpayable",
    ),
]


class Web3ClientManager:
    """Manage a Web3 provider and one token contract handle."""

    def __init__(self, w3: Any, contract: Any) -> None:
        """Wrap an existing provider and contract.

        Args:
            w3: Connected ``Web3`` instance.
            contract: Contract handle created from ``w3``.
        """
        self._w3 = w3
        self._contract = contract

    @classmethod
    def from_rpc(cls, rpc_url: str, abi_json: Optional[str], contract_address: str) -> "Web3ClientManager":
        """Build provider and contract from configuration values.

        Args:
            rpc_url: JSON-RPC endpoint.
            abi_json: Contract ABI as JSON string; empty uses ``DEFAULT_TOKEN_ABI``.
            contract_address: Token contract address.
        """
        try:
            abi = json.loads(abi_json) if abi_json else []
            if not abi:
                abi = DEFAULT_TOKEN_ABI
            w3 = Web3(Web3.HTTPProvider(rpc_url))
            contract = w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=abi)
            logger.info("Web3ClientManager initialized contract=%s", contract_address)
            return cls(w3=w3, contract=contract)
        except Exception:
            logger.exception("Failed to initialize Web3ClientManager rpc_url=%s", rpc_url)
            raise

    @property
    def w3(self) -> Any:
        return self._w3

    @property
    def contract(self) -> Any:
        return self._contract

    def to_checksum(self, address: str) -> str:
        """Validate an EVM address and return its checksum form."""
        normalized = (address or "").strip()
        if not Web3.is_address(normalized):
            raise ValueError("Invalid EVM address: {0}".format(address))
        return Web3.to_checksum_address(normalized)

    def call(self, function_name: str, *args: Any) -> Any:
        """Execute a read-only contract function."""
        try:
            function = getattr(self._contract.functions, function_name)
            return function(*args).call()
        except Exception:
            logger.exception("Failed to call contract function=%s", function_name)
            raise

    def send_transaction(
        self,
        function_name: str,
        args: List[Any],
        signer_address: str,
        private_key: str,
        chain_id: int,
        gas_limit: int,
        gas_price_gwei: int,
        receipt_timeout_sec: int = 120,
    ) -> Dict[str, Any]:
        """Build, sign, submit and wait for a contract transaction.

        Returns:
            Dict[str, Any]: ``tx_hash`` and receipt ``status`` (1 success, 0 revert).
        """
        try:
            nonce = self._w3.eth.get_transaction_count(signer_address)
            function = getattr(self._contract.functions, function_name)
            tx = function(*args).build_transaction(
                {
                    "chainId": chain_id,
                    "gas": gas_limit,
                    "gasPrice": self._w3.to_wei(gas_price_gwei, "gwei"),
                    "nonce": nonce,
                    "from": signer_address,
                }
            )
            signed_tx = self._w3.eth.account.sign_transaction(tx, private_key)
            raw_tx = getattr(signed_tx, "raw_transaction", None)
            if raw_tx is None:
                raw_tx = getattr(signed_tx, "rawTransaction")
            tx_hash = self._w3.eth.send_raw_transaction(raw_tx)
            receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=receipt_timeout_sec)
            status = int(receipt["status"])
            tx_hash_hex = tx_hash.hex() if hasattr(tx_hash, "hex") else str(tx_hash)
            logger.info("Contract transaction mined function=%s tx_hash=%s status=%s", function_name, tx_hash_hex, status)
            return {"tx_hash": tx_hash_hex, "status": status}
        except Exception:
            logger.exception("Contract transaction failed function=%s", function_name)
            raise
