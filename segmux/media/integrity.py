"""
Provides methods for checking the integrity of reassembled media files.
"""

import logging
from pathlib import Path

from mutagen import MutagenError
from mutagen.mp4 import MP4, MP4StreamInfoError

log = logging.getLogger(__name__)

TS_SYNC_BYTE = 0x47


class FileIntegrityChecker:
    """A collection of static methods for validating media file integrity."""

    @staticmethod
    def check_mp4(filepath: Path) -> bool:
        """
        Performs a basic integrity check on an (fragmented) MP4 file.

        Checks if the file can be opened by mutagen and carries stream info.
        Fragmented files legitimately report a zero duration in their header,
        so only the presence of the stream info is required.

        Args:
            filepath: Path to the MP4/M4A file.

        Returns:
            True if the file appears to be a valid MP4 file, False otherwise.
        """
        try:
            media = MP4(filepath)
            if media.info is not None:
                return True
            log.warning(
                f"MP4 integrity check failed for '{filepath}': No valid stream info."
            )
            return False
        except MP4StreamInfoError:
            log.warning(
                f"MP4 integrity check failed for '{filepath}': Missing stream header."
            )
            return False
        except MutagenError as e:
            log.debug(f"MP4 check failed for '{filepath}' with unexpected error: {e}")
            return False

    @staticmethod
    def check_transport_stream(filepath: Path) -> bool:
        """Checks that an MPEG-TS file starts with a sync byte and is packet aligned."""
        size = filepath.stat().st_size
        if size == 0 or size % 188:
            log.warning(
                f"TS integrity check failed for '{filepath}': size {size} is not a "
                "multiple of the 188 byte packet size."
            )
            return False
        with open(filepath, "rb") as f:
            return f.read(1)[0] == TS_SYNC_BYTE

    @classmethod
    def check(cls, filepath: Path) -> bool:
        """Dispatches on the container found at the start of the file."""
        with open(filepath, "rb") as f:
            head = f.read(1)
        if not head:
            log.warning(f"Integrity check failed for '{filepath}': file is empty.")
            return False
        if head[0] == TS_SYNC_BYTE:
            return cls.check_transport_stream(filepath)
        return cls.check_mp4(filepath)
