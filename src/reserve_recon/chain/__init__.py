"""Ledger access: account layout, instruction encoding, RPC and state reader."""

from reserve_recon.chain.layout import ProtocolStateLayoutV2
from reserve_recon.chain.reader import OnChainStateReader
from reserve_recon.chain.rpc import LedgerRpc, Web3LedgerRpc, derive_state_address

__all__ = [
    "LedgerRpc",
    "OnChainStateReader",
    "ProtocolStateLayoutV2",
    "Web3LedgerRpc",
    "derive_state_address",
]
