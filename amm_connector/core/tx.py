# /amm_connector/core/tx.py
# Signs and broadcasts transactions with a nonce handed in by the NonceManager.
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List

from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3

from amm_connector.core.logger import get_logger, SUBMISSION_FAILURES

log = get_logger(__name__)


@dataclass(frozen=True)
class PendingTransaction:
    hash: str
    nonce: int
    sender: str
    to: str
    value: int
    gas_price: int  # wei
    gas_limit: int
    chain_id: int
    method_name: str | None = None


def gwei_to_wei(gas_price: Decimal | float | int) -> int:
    # str() first so floats convert by their shortest repr, not binary expansion
    return int((Decimal(str(gas_price)) * 10**9).to_integral_value())


class TransactionSubmitter:
    """Builds, signs and sends legacy (gasPrice) transactions."""
    def __init__(self, w3: AsyncWeb3, chain_id: int):
        self.w3 = w3
        self.chain_id = chain_id

    async def send_contract_call(self, wallet: LocalAccount, contract_address: str, abi: List[Dict[str, Any]],
                                 method_name: str, args: List[Any], value: int, gas_price: Decimal,
                                 gas_limit: int, nonce: int) -> PendingTransaction:
        contract = self.w3.eth.contract(address=contract_address, abi=abi)
        tx_params = await contract.functions[method_name](*args).build_transaction({
            'from': wallet.address,
            'value': value,
            'gas': int(gas_limit),
            'gasPrice': gwei_to_wei(gas_price),
            'nonce': nonce,
            'chainId': self.chain_id,
        })
        return await self._sign_and_send(wallet, tx_params, method_name)

    async def send_self_transfer(self, wallet: LocalAccount, gas_price: Decimal, gas_limit: int,
                                 nonce: int) -> PendingTransaction:
        """Zero-value transfer to the sender, used to displace a stuck nonce."""
        tx_params = {
            'from': wallet.address,
            'to': wallet.address,
            'value': 0,
            'gas': int(gas_limit),
            'gasPrice': gwei_to_wei(gas_price),
            'nonce': nonce,
            'chainId': self.chain_id,
        }
        return await self._sign_and_send(wallet, tx_params, None)

    async def _sign_and_send(self, wallet: LocalAccount, tx_params: Dict[str, Any],
                             method_name: str | None) -> PendingTransaction:
        nonce = tx_params['nonce']
        try:
            signed_tx = wallet.sign_transaction(tx_params)
            tx_hash = await self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except Exception as e:
            SUBMISSION_FAILURES.labels(str(self.chain_id)).inc()
            log.error("TRANSACTION_SUBMISSION_FAILED", nonce=nonce, method=method_name, error=str(e), exc_info=True)
            raise

        tx_hash_hex = tx_hash.to_0x_hex()
        log.info("TRANSACTION_BROADCASTED", tx_hash=tx_hash_hex, nonce=nonce, method=method_name,
                 gas_price=tx_params['gasPrice'], gas_limit=tx_params['gas'])
        return PendingTransaction(
            hash=tx_hash_hex,
            nonce=nonce,
            sender=wallet.address,
            to=tx_params['to'],
            value=tx_params['value'],
            gas_price=tx_params['gasPrice'],
            gas_limit=tx_params['gas'],
            chain_id=self.chain_id,
            method_name=method_name,
        )
