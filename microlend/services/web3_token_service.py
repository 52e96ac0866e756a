"""Token service backed by an on-chain mintable ERC-20 contract."""

import logging
from typing import Any, List

from web3.exceptions import ContractLogicError

from microlend.core.config import AppSettings
from microlend.core.web3_client_manager import Web3ClientManager
from microlend.models.exceptions import TokenOperationError
from microlend.services.token_service import require_token_amount


logger = logging.getLogger(__name__)


class Web3TokenService:
    """Drive ``mint``/``burn``/``transfer`` through signed contract transactions.

    The signer must be the contract owner (minter) and doubles as the
    ledger's token holder, so ``transfer`` spends the signer's balance.
    """

    def __init__(
        self,
        client: Web3ClientManager,
        signer_address: str,
        private_key: str,
        chain_id: int,
        gas_limit: int,
        gas_price_gwei: int,
        receipt_timeout_sec: int = 120,
    ) -> None:
        self._client = client
        self._signer_address = client.to_checksum(signer_address)
        self._private_key = private_key
        self._chain_id = chain_id
        self._gas_limit = gas_limit
        self._gas_price_gwei = gas_price_gwei
        self._receipt_timeout_sec = receipt_timeout_sec

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "Web3TokenService":
        """Create the service from the ``web3`` configuration section."""
        required = [
            settings.rpc_url,
            settings.token_contract_address,
            settings.signer_address,
            settings.signer_private_key,
        ]
        if not all(required):
            raise ValueError("Missing required web3 configuration values.")
        client = Web3ClientManager.from_rpc(
            rpc_url=settings.rpc_url or "",
            abi_json=settings.token_abi_json,
            contract_address=settings.token_contract_address or "",
        )
        return cls(
            client=client,
            signer_address=settings.signer_address or "",
            private_key=settings.signer_private_key or "",
            chain_id=settings.chain_id,
            gas_limit=settings.gas_limit,
            gas_price_gwei=settings.gas_price_gwei,
            receipt_timeout_sec=settings.receipt_timeout_sec,
        )

    @property
    def ledger_address(self) -> str:
        return self._signer_address

    def _send(self, function_name: str, args: List[Any]) -> int:
        result = self._client.send_transaction(
            function_name=function_name,
            args=args,
            signer_address=self._signer_address,
            private_key=self._private_key,
            chain_id=self._chain_id,
            gas_limit=self._gas_limit,
            gas_price_gwei=self._gas_price_gwei,
            receipt_timeout_sec=self._receipt_timeout_sec,
        )
        return int(result["status"])

    def mint(self, to: str, amount: int) -> None:
        require_token_amount(amount)
        if self._send("mint", [self._client.to_checksum(to), amount]) != 1:
            raise TokenOperationError("mint of {0} to {1} reverted".format(amount, to))

    def burn(self, from_address: str, amount: int) -> None:
        require_token_amount(amount)
        if self._send("burn", [self._client.to_checksum(from_address), amount]) != 1:
            raise TokenOperationError("burn of {0} from {1} reverted".format(amount, from_address))

    def balance_of(self, account: str) -> int:
        return int(self._client.call("balanceOf", self._client.to_checksum(account)))

    def transfer(self, to: str, amount: int) -> bool:
        require_token_amount(amount)
        try:
            return self._send("transfer", [self._client.to_checksum(to), amount]) == 1
        except (ContractLogicError, ValueError):
            logger.warning("Transfer rejected by node to=%s amount=%s", to, amount)
            return False
