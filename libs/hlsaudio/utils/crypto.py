from __future__ import annotations

import struct

from Crypto.Cipher import AES


def num_to_iv(n: int) -> bytes:
    """
    Derive the IV of a segment without an explicit ``IV`` attribute:
    eight zero bytes followed by the big-endian 64-bit media sequence number.

    This matches the upstream Gaana encoder, not RFC 8216 in general.
    """
    return struct.pack(">8xq", n)


def decrypt_cbc(data: bytes, key: bytes, iv: bytes) -> bytes:
    """
    AES-CBC decryption without removing any padding.

    Raises :class:`ValueError` for invalid key sizes or data which is not a multiple of the block size.
    """
    # Pad IV if needed
    iv = b"\x00" * (AES.block_size - len(iv)) + iv

    return AES.new(key, AES.MODE_CBC, iv).decrypt(data)


__all__ = ["AES", "decrypt_cbc", "num_to_iv"]
