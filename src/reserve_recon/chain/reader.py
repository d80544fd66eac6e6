"""On-chain state reader.

Fetches the protocol state account at its derived address and decodes
it with the versioned layout. A missing account is a valid
pre-initialization state and raises AccountNotFound; callers must treat
it as "no safety baseline", never as zero reserves.
"""

from __future__ import annotations

import logging
from typing import Optional

from reserve_recon.chain.layout import ProtocolStateLayoutV2
from reserve_recon.chain.rpc import LedgerRpc
from reserve_recon.errors import AccountNotFound
from reserve_recon.models.protocol_state import ProtocolStateSnapshot


logger = logging.getLogger(__name__)


class OnChainStateReader:
    """Reads ProtocolStateSnapshots for one state account."""

    def __init__(
        self,
        rpc: LedgerRpc,
        state_address: str,
        layout: Optional[ProtocolStateLayoutV2] = None,
    ) -> None:
        self._rpc = rpc
        self._state_address = state_address
        self._layout = layout or ProtocolStateLayoutV2()

    @property
    def state_address(self) -> str:
        return self._state_address

    def read(self) -> ProtocolStateSnapshot:
        """Fetch and decode a fresh snapshot.

        Raises AccountNotFound, LayoutError or LedgerUnavailable.
        """
        data = self._rpc.get_account_data(self._state_address)
        if data is None:
            raise AccountNotFound(self._state_address)
        snapshot = self._layout.decode(data)
        logger.debug(
            "Read state %s: supply=%d reserves=%d",
            self._state_address, snapshot.total_supply, snapshot.proven_reserves,
        )
        return snapshot
