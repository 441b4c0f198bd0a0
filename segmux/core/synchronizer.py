"""
Finds the time offsets between audio tracks that carry the same content.

Tracks are compared through chromaprint fingerprints: a coarse pass aligns
them to whole tokens (0.128 s), then the reference fingerprint is regenerated
at sub-token start shifts and the offsets of all matching sweep points are
averaged to get below the token resolution.
"""

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from segmux.exceptions import SyncError
from segmux.media.fingerprint import (
    TOKEN_DURATION,
    ChromaprintFingerprinter,
    Fingerprint,
    Fingerprinter,
)

log = logging.getLogger(__name__)

MIN_RANGE_SECONDS = 20.0
MAX_RANGE_SECONDS = 180.0
WINDOW_PADDING = 20.0
VALUE_PROBE = 2
# Tokens repeated more often than this (silence, steady tones) carry no position.
MAX_TOKEN_OCCURRENCES = 8


@dataclass(frozen=True)
class TimeRange:
    start: float
    end: float

    @property
    def length(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class Alignment:
    """A run of matching tokens, in the source time of both fingerprints."""

    reference: TimeRange
    candidate: TimeRange

    @property
    def offset(self) -> float:
        """Reference time minus candidate time for the same audio."""
        return self.reference.start - self.candidate.start

    @property
    def length(self) -> float:
        return self.reference.length


def popcount(values: np.ndarray) -> np.ndarray:
    """Number of set bits of every uint32 element."""
    as_bytes = np.ascontiguousarray(values, dtype=np.uint32).view(np.uint8)
    return np.unpackbits(as_bytes).reshape(-1, 32).sum(axis=1)


def build_inverse_index(tokens: np.ndarray) -> dict[int, list[int]]:
    """Maps every token value to the positions it occurs at."""
    index: dict[int, list[int]] = defaultdict(list)
    for position, value in enumerate(tokens.tolist()):
        index[value].append(position)
    return {
        value: positions
        for value, positions in index.items()
        if len(positions) <= MAX_TOKEN_OCCURRENCES
    }


def candidate_shifts(reference: np.ndarray, candidate: np.ndarray) -> set[int]:
    """
    Index shifts (candidate position minus reference position) suggested by
    token values that occur in both fingerprints, allowing a small numeric
    perturbation of the value.
    """
    reference_index = build_inverse_index(reference)
    candidate_index = build_inverse_index(candidate)
    shifts = set()
    for value, reference_positions in reference_index.items():
        for probe in range(value - VALUE_PROBE, value + VALUE_PROBE + 1):
            candidate_positions = candidate_index.get(probe)
            if not candidate_positions:
                continue
            for i in reference_positions:
                for j in candidate_positions:
                    shifts.add(j - i)
    return shifts


def find_time_ranges(
    reference: Fingerprint,
    candidate: Fingerprint,
    shift: int,
    tolerance: int,
    merge_gap: float = TOKEN_DURATION,
) -> list[Alignment]:
    """
    Compares reference token i with candidate token i + shift over the whole
    overlap and collapses the matching positions into ranges.
    """
    first = max(0, -shift)
    last = min(len(reference), len(candidate) - shift)
    if last <= first:
        return []

    differences = popcount(
        reference.tokens[first:last] ^ candidate.tokens[first + shift : last + shift]
    )
    matched = np.nonzero(differences <= tolerance)[0] + first
    if matched.size == 0:
        return []

    max_step = max(1, round(merge_gap / TOKEN_DURATION))
    breaks = np.nonzero(np.diff(matched) > max_step)[0]
    run_starts = np.concatenate(([0], breaks + 1))
    run_ends = np.concatenate((breaks, [matched.size - 1]))

    alignments = []
    for run_start, run_end in zip(run_starts.tolist(), run_ends.tolist()):
        i, k = int(matched[run_start]), int(matched[run_end])
        alignments.append(
            Alignment(
                TimeRange(reference.timestamp(i), reference.timestamp(k)),
                TimeRange(candidate.timestamp(i + shift), candidate.timestamp(k + shift)),
            )
        )
    return alignments


def cap_alignment(alignment: Alignment) -> Alignment:
    """Trims a range of 180 s or more to its first window below that limit."""
    if alignment.length < MAX_RANGE_SECONDS:
        return alignment
    span = MAX_RANGE_SECONDS - TOKEN_DURATION
    return Alignment(
        TimeRange(alignment.reference.start, alignment.reference.start + span),
        TimeRange(alignment.candidate.start, alignment.candidate.start + span),
    )


def compare_fingerprints(
    reference: Fingerprint,
    candidate: Fingerprint,
    tolerance: int,
    merge_gap: float = TOKEN_DURATION,
) -> list[Alignment]:
    """
    Returns the longest usable range of every candidate shift, longest first.

    Ranges of 20 s or less are too short to trust. Ranges of 180 s or more are
    capped to a window below 180 s but still rank by their full length.
    """
    ranked = []
    for shift in candidate_shifts(reference.tokens, candidate.tokens):
        usable = [
            a
            for a in find_time_ranges(reference, candidate, shift, tolerance, merge_gap)
            if a.length > MIN_RANGE_SECONDS
        ]
        if usable:
            best = max(usable, key=lambda a: a.length)
            ranked.append((best.length, cap_alignment(best)))
    ranked.sort(key=lambda item: item[0], reverse=True)
    return [alignment for _, alignment in ranked]


class AudioSynchronizer:
    """
    Computes per-track offsets against the track with the shortest
    fingerprint. An offset is added to the candidate's timestamps to line it
    up with the reference.
    """

    def __init__(
        self,
        fingerprinter: Fingerprinter | None = None,
        tolerance: int = 6,
        precision: int = 8,
        merge_gap: float = TOKEN_DURATION,
    ):
        self.fingerprinter = fingerprinter or ChromaprintFingerprinter()
        self.tolerance = tolerance
        self.precision = precision
        self.merge_gap = merge_gap

    def _compare(self, reference: Fingerprint, candidate: Fingerprint):
        return compare_fingerprints(
            reference, candidate, self.tolerance, self.merge_gap
        )

    async def synchronize(self, tracks: Mapping[str, Path]) -> dict[str, float]:
        """
        Returns `{track_id: offset_seconds}` with the reference at 0.0.

        Raises SyncError when a track shares no usable range with the reference.
        """
        if len(tracks) < 2:
            return {track_id: 0.0 for track_id in tracks}

        started = time.monotonic()
        ids = list(tracks)
        full = await asyncio.gather(*(self.fingerprinter(tracks[i]) for i in ids))
        fingerprints = dict(zip(ids, full))

        reference_id = min(ids, key=lambda i: len(fingerprints[i]))
        candidates = [i for i in ids if i != reference_id]
        reference_fp = fingerprints[reference_id]

        coarse: dict[str, float] = {}
        window_start = float("inf")
        window_end = float("-inf")
        for candidate_id in candidates:
            alignments = self._compare(reference_fp, fingerprints[candidate_id])
            if not alignments:
                raise SyncError(reference_id, candidate_id)
            best = alignments[0]
            coarse[candidate_id] = best.offset
            window_start = min(window_start, best.reference.start)
            window_end = max(window_end, best.reference.end)
            log.debug(
                f"Initial offset of {best.offset * 1000:.0f}ms between "
                f"'{candidate_id}' and '{reference_id}' "
                f"({best.reference.start:.3f}s - {best.reference.end:.3f}s, "
                f"{best.length:.1f}s)"
            )

        window_start = max(0.0, window_start - WINDOW_PADDING)
        window_end += WINDOW_PADDING
        log.debug(
            f"Found matching audio parts, narrowing search to "
            f"{window_start:.3f}s - {window_end:.3f}s"
        )

        narrowed = dict(
            zip(
                candidates,
                await asyncio.gather(
                    *(
                        self.fingerprinter(
                            tracks[c], window_start - coarse[c], window_end - coarse[c]
                        )
                        for c in candidates
                    )
                ),
            )
        )

        estimates: dict[str, list[float]] = {c: [] for c in candidates}
        for step in range(self.precision):
            shift = step * TOKEN_DURATION / self.precision
            swept = await self.fingerprinter(
                tracks[reference_id], window_start + shift, window_end + shift
            )
            for candidate_id in candidates:
                alignments = self._compare(swept, narrowed[candidate_id])
                if alignments:
                    estimates[candidate_id].append(alignments[0].offset)

        offsets = {reference_id: 0.0}
        for candidate_id in candidates:
            runs = estimates[candidate_id]
            if runs:
                offset = sum(runs) / len(runs)
            else:
                log.debug(
                    f"No sweep point matched for '{candidate_id}', keeping the "
                    "initial offset"
                )
                offset = coarse[candidate_id]
            offsets[candidate_id] = round(offset * 1000) / 1000
            log.debug(
                f"Offset of '{candidate_id}' is {offsets[candidate_id] * 1000:.0f}ms "
                f"({len(runs)}/{self.precision} sweep points)"
            )

        log.debug(f"Synchronized {len(tracks)} tracks in {time.monotonic() - started:.1f}s")
        return offsets
