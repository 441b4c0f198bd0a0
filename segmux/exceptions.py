"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class SegmuxError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(SegmuxError):
    """Raised for issues related to configuration loading or validation."""


class SegmentDownloadError(SegmuxError):
    """Raised when a segment could not be fetched within the retry budget."""

    def __init__(self, index: int, url: str, reason: str = ""):
        self.index = index
        self.url = url
        message = f"Segment {index} could not be downloaded ({url})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class DecryptionError(SegmuxError):
    """Raised when a segment payload cannot be decrypted. Never retried."""


class ReassemblyError(SegmuxError):
    """
    Raised when the segment channel closes while segments are still buffered
    or were never delivered.
    """

    def __init__(
        self, stranded: list[int], missing: list[int] | None = None, reason: str = ""
    ):
        self.stranded = stranded
        self.missing = missing or []
        if reason:
            super().__init__(reason)
            return
        parts = []
        if self.stranded:
            parts.append(f"stranded segments: {', '.join(map(str, self.stranded))}")
        if self.missing:
            parts.append(f"missing segments: {', '.join(map(str, self.missing))}")
        super().__init__(
            "Reassembly finished early; " + ("; ".join(parts) or "no segments written")
        )


class FileIntegrityError(SegmuxError):
    """Raised when a downloaded file fails a post-download integrity check."""


class MissingLocaleError(SegmuxError):
    """Raised when a requested audio or subtitle locale is not part of the job."""


class SyncError(SegmuxError):
    """Raised when two audio tracks share no matching fingerprint range."""

    def __init__(self, reference: str, candidate: str):
        self.reference = reference
        self.candidate = candidate
        super().__init__(
            f"Could not find a matching audio range between '{reference}' and "
            f"'{candidate}'"
        )


class FFmpegNotFoundError(SegmuxError):
    """Raised when the ffmpeg executable is not available on PATH."""


class MuxError(SegmuxError):
    """Raised when ffmpeg exits with a non-zero status. Carries its stderr."""

    def __init__(self, returncode: int, stderr: str):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"ffmpeg exited with status {returncode}:\n{stderr}")


class FingerprintError(SegmuxError):
    """Raised when ffmpeg cannot produce an audio fingerprint for a file."""
