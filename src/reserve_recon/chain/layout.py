"""Binary layout of the protocol state account.

The ledger program stores its state as a fixed-offset little-endian
record behind an 8-byte account discriminator. This module is the only
place that knows the offsets. Decoding is pure byte slicing; there is no
business logic here.

Layout V2 (offsets include the discriminator):

    [0..8)     discriminator  sha256("account:ProtocolState")[:8]
    [8..40)    authority
    [40..72)   operator
    [72..104)  mint
    [104..136) treasury
    [136..144) total_supply            u64
    [144..152) total_burned            u64
    [152..184) current_commitment_root [u8; 32]
    [184..192) proven_reserves         u64
    [192..200) last_root_update        i64
    [200..208) last_proof_timestamp    i64
    [208..216) price_units             u64
    [216..248) price_receiver
    [248..250) yield_apy_bps           u16
    [250..258) total_yield_distributed u64
    [258..266) last_yield_distribution i64
    [266]      is_paused
    [267]      bump
    [268..332) reserved; byte 268 is the layout version tag

V1 accounts (218 bytes, no operator field) are a one-time migration
concern and are rejected with LayoutError rather than guessed at.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass

from reserve_recon.errors import LayoutError
from reserve_recon.models.protocol_state import ProtocolStateSnapshot


ACCOUNT_DISCRIMINATOR = hashlib.sha256(b"account:ProtocolState").digest()[:8]
V1_ACCOUNT_SIZE = 218
ALLOCATED_SIZE = 8 + 512


@dataclass(frozen=True)
class _Field:
    offset: int
    size: int


class ProtocolStateLayoutV2:
    """Decoder (and encoder) for schema version 2."""

    VERSION = 2
    MIN_SIZE = 268
    # Reserved byte carrying the layout tag. Unmigrated V2 accounts hold 0.
    VERSION_TAG_OFFSET = 268
    ACCEPTED_TAGS = (0, 2)

    AUTHORITY = _Field(8, 32)
    OPERATOR = _Field(40, 32)
    MINT = _Field(72, 32)
    TREASURY = _Field(104, 32)
    TOTAL_SUPPLY = _Field(136, 8)
    TOTAL_BURNED = _Field(144, 8)
    ROOT = _Field(152, 32)
    PROVEN_RESERVES = _Field(184, 8)
    LAST_ROOT_UPDATE = _Field(192, 8)
    LAST_PROOF = _Field(200, 8)
    PRICE = _Field(208, 8)
    PRICE_RECEIVER = _Field(216, 32)
    IS_PAUSED = _Field(266, 1)
    BUMP = _Field(267, 1)

    def decode(self, data: bytes) -> ProtocolStateSnapshot:
        """Decode raw account bytes into a snapshot.

        Raises LayoutError on a short buffer, a foreign discriminator or
        an unknown version tag.
        """
        if len(data) < self.MIN_SIZE:
            hint = " (V1 account; run the V2 layout migration)" if len(data) == V1_ACCOUNT_SIZE else ""
            raise LayoutError(
                f"Protocol state account too small: {len(data)} bytes, "
                f"layout V{self.VERSION} needs {self.MIN_SIZE}{hint}"
            )
        if data[:8] != ACCOUNT_DISCRIMINATOR:
            raise LayoutError(
                f"Unexpected account discriminator {data[:8].hex()}, "
                f"expected {ACCOUNT_DISCRIMINATOR.hex()}"
            )
        if len(data) > self.VERSION_TAG_OFFSET:
            tag = data[self.VERSION_TAG_OFFSET]
            if tag not in self.ACCEPTED_TAGS:
                raise LayoutError(
                    f"Unsupported protocol state layout version {tag}; "
                    f"this reader understands V{self.VERSION}"
                )

        return ProtocolStateSnapshot(
            schema_version=self.VERSION,
            authority=_address(data, self.AUTHORITY),
            operator=_address(data, self.OPERATOR),
            mint_address=_address(data, self.MINT),
            treasury_address=_address(data, self.TREASURY),
            total_supply=_u64(data, self.TOTAL_SUPPLY),
            total_burned=_u64(data, self.TOTAL_BURNED),
            current_commitment_root=bytes(data[self.ROOT.offset:self.ROOT.offset + self.ROOT.size]),
            proven_reserves=_u64(data, self.PROVEN_RESERVES),
            last_update_timestamp=_i64(data, self.LAST_ROOT_UPDATE),
            last_proof_timestamp=_i64(data, self.LAST_PROOF),
            price_units=_u64(data, self.PRICE),
            is_paused=data[self.IS_PAUSED.offset] != 0,
            bump=data[self.BUMP.offset],
        )

    def encode(self, snapshot: ProtocolStateSnapshot) -> bytes:
        """Serialize a snapshot back into a full-size V2 account buffer.

        Fields the snapshot does not carry (price receiver, yield) are
        written as zero.
        """
        buf = bytearray(ALLOCATED_SIZE)
        buf[0:8] = ACCOUNT_DISCRIMINATOR
        _put_address(buf, self.AUTHORITY, snapshot.authority)
        _put_address(buf, self.OPERATOR, snapshot.operator)
        _put_address(buf, self.MINT, snapshot.mint_address)
        _put_address(buf, self.TREASURY, snapshot.treasury_address)
        struct.pack_into("<Q", buf, self.TOTAL_SUPPLY.offset, snapshot.total_supply)
        struct.pack_into("<Q", buf, self.TOTAL_BURNED.offset, snapshot.total_burned)
        if len(snapshot.current_commitment_root) != self.ROOT.size:
            raise LayoutError("Commitment root must be 32 bytes")
        buf[self.ROOT.offset:self.ROOT.offset + self.ROOT.size] = snapshot.current_commitment_root
        struct.pack_into("<Q", buf, self.PROVEN_RESERVES.offset, snapshot.proven_reserves)
        struct.pack_into("<q", buf, self.LAST_ROOT_UPDATE.offset, snapshot.last_update_timestamp)
        struct.pack_into("<q", buf, self.LAST_PROOF.offset, snapshot.last_proof_timestamp)
        struct.pack_into("<Q", buf, self.PRICE.offset, snapshot.price_units)
        buf[self.IS_PAUSED.offset] = 1 if snapshot.is_paused else 0
        buf[self.BUMP.offset] = snapshot.bump
        return bytes(buf)


def _u64(data: bytes, f: _Field) -> int:
    return struct.unpack_from("<Q", data, f.offset)[0]


def _i64(data: bytes, f: _Field) -> int:
    return struct.unpack_from("<q", data, f.offset)[0]


def _address(data: bytes, f: _Field) -> str:
    return "0x" + bytes(data[f.offset:f.offset + f.size]).hex()


def _put_address(buf: bytearray, f: _Field, value: str) -> None:
    raw = bytes.fromhex(value.removeprefix("0x"))
    if len(raw) != f.size:
        raise LayoutError(f"Address must be {f.size} bytes, got {len(raw)}")
    buf[f.offset:f.offset + f.size] = raw
