"""ERC-20 asset backend speaking JSON-RPC through web3."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from eth_abi import encode
from eth_utils import keccak
from web3 import Web3
from web3.exceptions import ContractLogicError

from .config import Settings, load_relayer_account
from .errors import TransferReverted
from .transfers import TransferOutcome, normalise_transfer_result

if TYPE_CHECKING:  # pragma: no cover - typing only
    from eth_account.signers.local import LocalAccount
else:
    LocalAccount = Any

_LOGGER = logging.getLogger(__name__)

ERC20_ABI: List[Dict[str, Any]] = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

TRANSFER_FROM_SELECTOR = keccak(text="transferFrom(address,address,uint256)")[:4]


def encode_transfer_from(sender: str, recipient: str, amount: int) -> bytes:
    return TRANSFER_FROM_SELECTOR + encode(["address", "address", "uint256"], [sender, recipient, amount])


class Web3Erc20Backend:
    """Reads balances and allowances and executes ``transferFrom`` as ``account``.

    ``transferFrom`` is simulated with ``eth_call`` first so the raw return
    data can be inspected; only a simulation that reports success is signed
    and broadcast.
    """

    def __init__(
        self,
        w3: Web3,
        account: LocalAccount,
        *,
        gas_limit: Optional[int] = None,
        receipt_timeout: float = 120.0,
    ) -> None:
        self.w3 = w3
        self.account = account
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "Web3Erc20Backend":
        w3 = Web3(Web3.HTTPProvider(settings.rpc_url))
        return cls(w3, load_relayer_account(settings), **kwargs)

    def _contract(self, asset: str) -> Any:
        return self.w3.eth.contract(address=Web3.to_checksum_address(asset), abi=ERC20_ABI)

    def allowance(self, owner: str, spender: str, asset: str) -> int:
        contract = self._contract(asset)
        return int(
            contract.functions.allowance(Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)).call()
        )

    def balance_of(self, owner: str, asset: str) -> int:
        return int(self._contract(asset).functions.balanceOf(Web3.to_checksum_address(owner)).call())

    def transfer_from(self, asset: str, sender: str, recipient: str, amount: int) -> Any:
        call = {
            "from": self.account.address,
            "to": Web3.to_checksum_address(asset),
            "data": "0x" + encode_transfer_from(sender, recipient, amount).hex(),
        }
        try:
            raw = bytes(self.w3.eth.call(call))
        except ContractLogicError as exc:
            raise TransferReverted(str(exc)) from exc

        if normalise_transfer_result(raw) is not TransferOutcome.SUCCESS:
            return raw

        try:
            gas = self.gas_limit or self.w3.eth.estimate_gas(call)
        except ContractLogicError as exc:
            raise TransferReverted(str(exc)) from exc

        tx = dict(call)
        tx.update(
            {
                "nonce": self.w3.eth.get_transaction_count(self.account.address),
                "gas": gas,
                "gasPrice": self.w3.eth.gas_price,
                "chainId": self.w3.eth.chain_id,
            }
        )
        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        if receipt["status"] != 1:
            _LOGGER.warning("transferFrom %s on %s mined but failed", tx_hash.hex(), asset)
            return False
        _LOGGER.info("transferFrom %s of %s %s -> %s", tx_hash.hex(), amount, asset, recipient)
        return raw


__all__ = ["ERC20_ABI", "TRANSFER_FROM_SELECTOR", "Web3Erc20Backend", "encode_transfer_from"]
