"""
Segment payload decryption.
"""

from typing import Protocol

from Crypto.Cipher import AES
from Crypto.Util.Padding import unpad

from segmux.exceptions import DecryptionError
from segmux.models.job import SegmentKey


class Decryptor(Protocol):
    """Turns a fetched segment payload into plain media bytes."""

    def decrypt(self, data: bytes, key: SegmentKey | None) -> bytes: ...


class AesCbcDecryptor:
    """
    AES-128-CBC with PKCS#7 padding, the scheme used by encrypted HLS segments.
    Segments without a key are passed through unchanged.
    """

    def decrypt(self, data: bytes, key: SegmentKey | None) -> bytes:
        if key is None:
            return data
        if len(data) % AES.block_size:
            raise DecryptionError(
                f"Encrypted payload length {len(data)} is not a multiple of "
                f"{AES.block_size}"
            )
        cipher = AES.new(key.key, AES.MODE_CBC, iv=key.iv)
        try:
            return unpad(cipher.decrypt(data), AES.block_size)
        except ValueError as e:
            raise DecryptionError(f"Invalid padding after decryption: {e}") from e
