from __future__ import annotations

import asyncio
import struct
from pathlib import Path

import pytest
from Crypto.Cipher import AES
from Crypto.Util.Padding import pad

from segmux.exceptions import DecryptionError, FingerprintError
from segmux.media.decryptor import AesCbcDecryptor
from segmux.media.downloader import RetryPolicy
from segmux.media.fingerprint import ChromaprintFingerprinter, decode_raw_fingerprint
from segmux.media.integrity import FileIntegrityChecker
from segmux.media.rate_limiter import ByteRateLimiter
from segmux.models.job import SegmentKey

KEY = SegmentKey(key="00112233445566778899aabbccddeeff", iv="0f0e0d0c0b0a09080706050403020100")


def test_aes_cbc_payload_is_decrypted() -> None:
    plain = b"\x47" + bytes(range(200))
    cipher = AES.new(KEY.key, AES.MODE_CBC, iv=KEY.iv)
    encrypted = cipher.encrypt(pad(plain, AES.block_size))

    assert AesCbcDecryptor().decrypt(encrypted, KEY) == plain


def test_unencrypted_payload_passes_through() -> None:
    assert AesCbcDecryptor().decrypt(b"clear", None) == b"clear"


def test_bad_padding_is_a_decryption_error() -> None:
    cipher = AES.new(KEY.key, AES.MODE_CBC, iv=KEY.iv)
    encrypted = cipher.encrypt(bytes(32))

    with pytest.raises(DecryptionError, match="padding"):
        AesCbcDecryptor().decrypt(encrypted, KEY)
    with pytest.raises(DecryptionError, match="multiple"):
        AesCbcDecryptor().decrypt(encrypted[:-1], KEY)


def test_transport_stream_integrity(tmp_path: Path) -> None:
    good = tmp_path / "good.ts"
    good.write_bytes((b"\x47" + bytes(187)) * 4)
    truncated = tmp_path / "truncated.ts"
    truncated.write_bytes((b"\x47" + bytes(187)) * 4 + b"\x47\x00")
    empty = tmp_path / "empty.mp4"
    empty.write_bytes(b"")

    assert FileIntegrityChecker.check(good)
    assert not FileIntegrityChecker.check(truncated)
    assert not FileIntegrityChecker.check(empty)


def test_garbage_is_not_an_mp4(tmp_path: Path) -> None:
    garbage = tmp_path / "garbage.m4a"
    garbage.write_bytes(b"this is not a media file at all")

    assert not FileIntegrityChecker.check(garbage)


def test_raw_fingerprint_is_little_endian() -> None:
    raw = struct.pack("<3I", 1, 0xDEADBEEF, 0xFFFFFFFF)

    assert decode_raw_fingerprint(raw).tolist() == [1, 0xDEADBEEF, 0xFFFFFFFF]
    with pytest.raises(FingerprintError):
        decode_raw_fingerprint(raw[:-1])


def test_fingerprint_arguments() -> None:
    args = ChromaprintFingerprinter().build_args(Path("a.m4a"), 12.5, 80.25)

    assert args[:6] == ["-hide_banner", "-y", "-ss", "0:00:12.500", "-to", "0:01:20.250"]
    assert args[-7:] == ["-ac", "2", "-f", "chromaprint", "-fp_format", "raw", "-"]
    assert "-to" not in ChromaprintFingerprinter().build_args(Path("a.m4a"), 0, None)


def test_rate_limiter_paces_consumers() -> None:
    limiter = ByteRateLimiter(1000)

    async def _run():
        loop = asyncio.get_running_loop()
        started = loop.time()
        await asyncio.gather(*(limiter.consume(50) for _ in range(4)))
        return loop.time() - started

    elapsed = asyncio.run(_run())

    assert elapsed >= 0.19


def test_rate_limiter_rejects_non_positive_rates() -> None:
    with pytest.raises(ValueError):
        ByteRateLimiter(0)


def test_retry_policy_backoff() -> None:
    assert RetryPolicy().delay_for(3) == 0.0
    assert [RetryPolicy(base_delay=0.5).delay_for(n) for n in (1, 2, 3)] == [
        0.5,
        1.0,
        2.0,
    ]
