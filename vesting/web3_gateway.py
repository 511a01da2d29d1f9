"""
web3_gateway.py - On-chain LedgerGateway and WalletProvider over AsyncWeb3

Binds the vesting contract through web3.py's async API:

    vestingStartTimestamp()              view returns (uint32)
    vestingPeriodSeconds()               view returns (uint32)
    provenBalances(address)              view returns (uint256 initial, uint256 claimed)
    getProvenUnclaimedBalance(address)   view returns (uint256)
    claim(uint256 _amount)

Error mapping:
    connection failures            → ProviderDisconnected
    failed contract reads          → LedgerReadFailed
    revert during gas estimation   → TransactionReverted (before anything is signed)
    signer refusal / send failure  → TransactionRejected
    receipt with status 0          → TransactionReverted, reason replayed at the mined block
    wallet request declined (4001) → UserRejected
    other wallet RPC failures      → ProviderDisconnected

Usage:
    w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
    wallet = Web3WalletProvider(w3, account=Account.from_key(key))
    gateway = Web3LedgerGateway.at(w3, config.ledger_address, signer=wallet)
"""

from __future__ import annotations
import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .core import (
    ProvenBalance, WalletProvider,
    LedgerReadFailed, NoProvider, ProviderDisconnected,
    TransactionRejected, TransactionReverted, UserRejected, VestingError,
    USER_REJECTED_CODE,
)


# Seconds to wait for a claim receipt before giving up.
DEFAULT_RECEIPT_TIMEOUT = 120

# Connection-level failures. AsyncHTTPProvider re-raises aiohttp connection
# errors after its retries; those are not OSError subclasses.
_DISCONNECT_ERRORS = (aiohttp.ClientConnectionError, OSError, asyncio.TimeoutError)

# RPC failures surface as Web3Exception subclasses, or ValueError on older providers.
_RPC_ERRORS = (Web3Exception, ValueError)


VESTING_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "vestingStartTimestamp",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint32"}],
    },
    {
        "type": "function",
        "name": "vestingPeriodSeconds",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint32"}],
    },
    {
        "type": "function",
        "name": "provenBalances",
        "stateMutability": "view",
        "inputs": [{"name": "", "type": "address"}],
        "outputs": [
            {"name": "initial", "type": "uint256"},
            {"name": "claimed", "type": "uint256"},
        ],
    },
    {
        "type": "function",
        "name": "getProvenUnclaimedBalance",
        "stateMutability": "view",
        "inputs": [{"name": "user", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "claim",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "_amount", "type": "uint256"}],
        "outputs": [],
    },
]


def _revert_reason(exc: ContractLogicError) -> Optional[str]:
    """Ledger-supplied revert message, verbatim."""
    message = getattr(exc, "message", None)
    if message:
        return message
    text = str(exc)
    return text or None


def _rpc_error_code(exc: BaseException) -> Optional[int]:
    """Extract the JSON-RPC error code from a web3 exception, if present."""
    error = None
    response = getattr(exc, "rpc_response", None)
    if isinstance(response, dict):
        error = response.get("error")
    elif exc.args and isinstance(exc.args[0], dict):
        error = exc.args[0]
    if isinstance(error, dict):
        return error.get("code")
    return None


def _wallet_error(exc: BaseException) -> VestingError:
    """A wallet RPC failure: declined by the user, or an unusable provider."""
    if _rpc_error_code(exc) == USER_REJECTED_CODE:
        return UserRejected(str(exc))
    return ProviderDisconnected(f"wallet request failed: {exc}")


class Web3TransactionHandle:
    """
    A broadcast claim transaction.

    wait() polls for the receipt. A receipt with status 0 means the ledger
    reverted the claim; the reason is recovered by replaying the call at the
    block it was mined in.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        tx_hash: str,
        tx: Dict[str, Any],
        timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ):
        self.tx_hash = tx_hash
        self.receipt: Optional[Dict[str, Any]] = None
        self._w3 = w3
        self._tx = tx
        self._timeout = timeout

    async def wait(self) -> None:
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                self.tx_hash, timeout=self._timeout
            )
        except TimeExhausted as exc:
            raise LedgerReadFailed(
                f"No receipt for {self.tx_hash} after {self._timeout}s"
            ) from exc
        except _DISCONNECT_ERRORS as exc:
            raise ProviderDisconnected(str(exc)) from exc

        self.receipt = receipt
        if receipt["status"] == 0:
            reason = await self._replay_reason(receipt["blockNumber"])
            raise TransactionReverted(reason)

    async def _replay_reason(self, block_number: int) -> Optional[str]:
        call = {k: self._tx[k] for k in ("from", "to", "data", "value") if k in self._tx}
        try:
            await self._w3.eth.call(call, block_number)
        except ContractLogicError as exc:
            return _revert_reason(exc)
        except _RPC_ERRORS + _DISCONNECT_ERRORS:
            # node cannot replay; the revert stands without a reason
            return None
        return None


class Web3LedgerGateway:
    """
    LedgerGateway over a deployed vesting contract.

    Reads are plain eth_call requests. Claims are built against the holder,
    signed and sent by the attached signer, and tracked by Web3TransactionHandle.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        contract: Any,
        signer: Optional[WalletProvider] = None,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ):
        """
        Wrap an already-bound contract.

        Args:
            w3: Async web3 instance
            contract: Contract bound with VESTING_ABI
            signer: Wallet that signs and sends claims (required for submit_claim)
            receipt_timeout: Seconds to wait for a claim receipt
        """
        self._w3 = w3
        self._contract = contract
        self.signer = signer
        self.receipt_timeout = receipt_timeout

    @classmethod
    def at(
        cls,
        w3: AsyncWeb3,
        ledger_address: str,
        signer: Optional[WalletProvider] = None,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ) -> Web3LedgerGateway:
        """Bind the vesting contract deployed at ledger_address."""
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(ledger_address), abi=VESTING_ABI
        )
        return cls(w3, contract, signer=signer, receipt_timeout=receipt_timeout)

    async def get_vesting_start_timestamp(self) -> int:
        return int(await self._call(self._contract.functions.vestingStartTimestamp()))

    async def get_vesting_period_seconds(self) -> int:
        return int(await self._call(self._contract.functions.vestingPeriodSeconds()))

    async def get_proven_balance(self, holder: str) -> ProvenBalance:
        initial, claimed = await self._call(
            self._contract.functions.provenBalances(Web3.to_checksum_address(holder))
        )
        return ProvenBalance(initial=int(initial), claimed=int(claimed))

    async def get_proven_unclaimed_balance(self, holder: str) -> int:
        return int(await self._call(
            self._contract.functions.getProvenUnclaimedBalance(Web3.to_checksum_address(holder))
        ))

    async def submit_claim(self, holder: str, amount_base_units: int) -> Web3TransactionHandle:
        """
        Build, sign and broadcast claim(amount_base_units) from holder.

        Raises:
            NoProvider: If no signer is attached
            TransactionReverted: If gas estimation shows the claim would revert
            TransactionRejected: If the signer refuses or the node rejects the send
            ProviderDisconnected: If the connection drops
        """
        if self.signer is None:
            raise NoProvider("No signer attached to the ledger gateway")
        sender = Web3.to_checksum_address(holder)
        try:
            tx = await self._contract.functions.claim(amount_base_units).build_transaction(
                {"from": sender}
            )
        except ContractLogicError as exc:
            raise TransactionReverted(_revert_reason(exc)) from exc
        except _DISCONNECT_ERRORS as exc:
            raise ProviderDisconnected(str(exc)) from exc
        except _RPC_ERRORS as exc:
            raise TransactionRejected(str(exc)) from exc

        tx_hash = await self.signer.sign_and_send(tx)
        return Web3TransactionHandle(self._w3, tx_hash, tx, timeout=self.receipt_timeout)

    async def _call(self, fn: Any) -> Any:
        try:
            return await fn.call()
        except _DISCONNECT_ERRORS as exc:
            raise ProviderDisconnected(str(exc)) from exc
        except _RPC_ERRORS as exc:
            raise LedgerReadFailed(f"{getattr(fn, 'fn_name', 'call')} failed: {exc}") from exc


class Web3WalletProvider:
    """
    WalletProvider over an AsyncWeb3 connection.

    With `account` (an eth_account LocalAccount) transactions are signed
    locally and sent raw. Without it the node's unlocked accounts are used
    and the node signs.
    """

    def __init__(self, w3: AsyncWeb3, account: Optional[Any] = None):
        self._w3 = w3
        self.account = account

    async def request_accounts(self) -> List[str]:
        if self.account is not None:
            return [self.account.address]
        try:
            accounts = await self._w3.eth.accounts
        except _DISCONNECT_ERRORS as exc:
            raise ProviderDisconnected(str(exc)) from exc
        except _RPC_ERRORS as exc:
            raise _wallet_error(exc) from exc
        return [str(a) for a in accounts]

    async def get_chain_id(self) -> int:
        try:
            return int(await self._w3.eth.chain_id)
        except _DISCONNECT_ERRORS as exc:
            raise ProviderDisconnected(str(exc)) from exc
        except _RPC_ERRORS as exc:
            raise _wallet_error(exc) from exc

    async def sign_and_send(self, tx: Dict[str, Any]) -> str:
        """
        Sign and broadcast tx, returning its 0x-prefixed hash.

        Raises:
            TransactionRejected: If signing or sending fails
            ProviderDisconnected: If the connection drops
        """
        try:
            if self.account is not None:
                tx = dict(tx)
                if "nonce" not in tx:
                    tx["nonce"] = await self._w3.eth.get_transaction_count(
                        self.account.address, "pending"
                    )
                if "chainId" not in tx:
                    tx["chainId"] = await self._w3.eth.chain_id
                signed = self.account.sign_transaction(tx)
                tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            else:
                tx_hash = await self._w3.eth.send_transaction(tx)
        except _DISCONNECT_ERRORS as exc:
            raise ProviderDisconnected(str(exc)) from exc
        except _RPC_ERRORS as exc:
            raise TransactionRejected(str(exc)) from exc
        return Web3.to_hex(tx_hash)
