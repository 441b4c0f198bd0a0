"""
Media Processing Layer.

This package is responsible for all media level operations: fetching and
decrypting segments, subtitle fixes, ffmpeg presets, audio fingerprints and
integrity validation.
"""

from .decryptor import AesCbcDecryptor, Decryptor
from .downloader import Downloader, RetryPolicy
from .ffmpeg import FFmpegPreset
from .fingerprint import ChromaprintFingerprinter, Fingerprint
from .integrity import FileIntegrityChecker

__all__ = [
    "AesCbcDecryptor",
    "ChromaprintFingerprinter",
    "Decryptor",
    "Downloader",
    "FFmpegPreset",
    "FileIntegrityChecker",
    "Fingerprint",
    "RetryPolicy",
]
