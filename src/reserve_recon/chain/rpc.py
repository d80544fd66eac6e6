"""Ledger RPC: reads the protocol state account and submits signed instructions.

The reconciler drives an external ledger program; it never executes
program logic itself. Everything it needs from the network is the
``LedgerRpc`` contract:

- read raw account bytes by address,
- submit a signed instruction and get back a transaction identifier,
- wait for that identifier to confirm.

``Web3LedgerRpc`` implements the contract over an Ethereum JSON-RPC
endpoint: the program exposes ``getAccountData(address)`` for reads, and
instructions travel as the data field of a signed transaction sent to
the program address. Each call is a blocking round-trip.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, runtime_checkable

from reserve_recon.chain.instructions import Instruction
from reserve_recon.errors import LedgerUnavailable, TransactionError


logger = logging.getLogger(__name__)

READ_ACCOUNT_SIGNATURE = "getAccountData(address)"


@runtime_checkable
class LedgerRpc(Protocol):
    """Network contract the reconciler depends on."""

    def get_account_data(self, address: str) -> Optional[bytes]:
        """Raw account bytes, or None if the account does not exist."""
        ...

    def submit(self, instruction: Instruction) -> str:
        """Sign and submit ``instruction``. Returns the transaction identifier."""
        ...

    def confirm(self, tx_id: str, timeout: float) -> None:
        """Block until ``tx_id`` lands. Raises TransactionError if it failed."""
        ...


def derive_state_address(program_address: str, seed: bytes) -> str:
    """Deterministic address of the program's state account.

    keccak256(seed || program_address) truncated to 20 bytes, checksummed.
    """
    from web3 import Web3

    program = bytes.fromhex(program_address.removeprefix("0x"))
    digest = Web3.keccak(seed + program)
    return Web3.to_checksum_address("0x" + bytes(digest[-20:]).hex())


class Web3LedgerRpc:
    """LedgerRpc over web3.py with an eth-account signer.

    Usage:
        rpc = Web3LedgerRpc(rpc_url, private_key, program_address)
        data = rpc.get_account_data(state_address)
        tx_id = rpc.submit(instruction)
        rpc.confirm(tx_id, timeout=60)
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        program_address: str,
        chain_id: int = 11155111,  # Sepolia
        gas: int = 200_000,
        gas_price_gwei: str = "2",
    ) -> None:
        from web3 import Web3, HTTPProvider
        from eth_account import Account

        self._w3 = Web3(HTTPProvider(rpc_url))
        self._account = Account.from_key(private_key)
        self._program = Web3.to_checksum_address(program_address)
        self._chain_id = chain_id
        self._gas = gas
        self._gas_price = self._w3.to_wei(gas_price_gwei, "gwei")
        self._read_selector = Web3.keccak(text=READ_ACCOUNT_SIGNATURE)[:4]

    def get_account_data(self, address: str) -> Optional[bytes]:
        from eth_abi import decode
        from web3.exceptions import Web3Exception

        padded = bytes(12) + bytes.fromhex(address.removeprefix("0x"))
        try:
            raw = self._w3.eth.call({"to": self._program, "data": self._read_selector + padded})
        except (Web3Exception, OSError, ValueError) as exc:
            raise LedgerUnavailable(f"Account read failed for {address}: {exc}") from exc

        if not raw:
            return None
        (data,) = decode(["bytes"], bytes(raw))
        return data or None

    def submit(self, instruction: Instruction) -> str:
        from web3 import Web3
        from web3.exceptions import Web3Exception

        step = instruction.kind.value
        try:
            nonce = self._w3.eth.get_transaction_count(self._account.address, "pending")
            tx = {
                "to": self._program,
                "value": 0,
                "gas": self._gas,
                "gasPrice": self._gas_price,
                "nonce": nonce,
                "chainId": self._chain_id,
                "data": instruction.data,
            }
            signed = self._account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except (Web3Exception, OSError, ValueError) as exc:
            raise TransactionError(step, str(exc)) from exc

        tx_id = Web3.to_hex(tx_hash)
        logger.info("Submitted %s: %s", step, tx_id)
        return tx_id

    def confirm(self, tx_id: str, timeout: float) -> None:
        from web3.exceptions import TimeExhausted, Web3Exception

        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(tx_id, timeout=timeout)
        except TimeExhausted as exc:
            raise TransactionError("confirm", f"not confirmed within {timeout}s", tx_id) from exc
        except (Web3Exception, OSError, ValueError) as exc:
            raise TransactionError("confirm", str(exc), tx_id) from exc

        if receipt.status != 1:
            raise TransactionError("confirm", f"reverted in block {receipt.blockNumber}", tx_id)
        logger.info("Confirmed %s in block %s", tx_id, receipt.blockNumber)
