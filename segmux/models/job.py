"""
Pydantic models describing a resolved download job: its tracks, their
segments and the keys needed to decrypt them.
"""

from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class TrackKind(str, Enum):
    """The role a track plays in the final container."""

    VIDEO = "video"
    AUDIO = "audio"
    SUBTITLE = "subtitle"


class SegmentKey(BaseModel):
    """AES-128 key material for one segment. Hex strings are accepted."""

    key: bytes
    iv: bytes

    class Config:
        frozen = True

    @field_validator("key", "iv", mode="before")
    @classmethod
    def decode_hex(cls, v):
        if isinstance(v, str):
            try:
                v = bytes.fromhex(v)
            except ValueError as e:
                raise ValueError(f"Key material must be hex encoded: {e}") from e
        if len(v) != 16:
            raise ValueError("AES-128 key and IV must be 16 bytes long.")
        return v


class Segment(BaseModel):
    """One addressable, independently fetchable chunk of a track."""

    index: int = Field(ge=0)
    url: str
    length_hint: int = 0
    duration: float = 0.0
    key: SegmentKey | None = None

    class Config:
        frozen = True


class Track(BaseModel):
    """
    A single media stream of a job. Segmented tracks carry an ordered list of
    segments, single-file tracks (typically subtitles) carry one URL.
    """

    id: str
    kind: TrackKind
    locale: str = ""
    title: str = ""
    bitrate: int = 0  # bits per second
    duration: float = 0.0  # seconds
    fps: float = 0.0
    segments: list[Segment] | None = None
    url: str | None = None
    closed_captions: bool = False

    class Config:
        frozen = True
        str_strip_whitespace = True

    @field_validator("segments")
    @classmethod
    def validate_segment_order(cls, v: list[Segment] | None) -> list[Segment] | None:
        """Segment indices must run 0..N-1 without gaps or duplicates."""
        if v is None:
            return v
        for position, segment in enumerate(v):
            if segment.index != position:
                raise ValueError(
                    f"Segment at position {position} has index {segment.index}; "
                    "indices must be contiguous and start at 0."
                )
        return v

    @model_validator(mode="after")
    def validate_source(self) -> "Track":
        if (self.segments is None) == (self.url is None):
            raise ValueError(
                f"Track '{self.id}' must define exactly one of 'segments' or 'url'."
            )
        if self.segments is not None and not self.segments:
            raise ValueError(f"Track '{self.id}' has an empty segment list.")
        return self

    @property
    def is_segmented(self) -> bool:
        return self.segments is not None

    @property
    def display_name(self) -> str:
        label = self.title or self.locale or self.id
        return f"{self.kind.value} {label}"

    def estimated_size(self) -> int:
        """Bitrate based size estimate in bytes."""
        if self.segments:
            seconds = sum(s.duration for s in self.segments) or self.duration
        else:
            seconds = self.duration
        return int(self.bitrate / 8 * seconds)


class DownloadJob(BaseModel):
    """The full set of tracks that are muxed into one output artifact."""

    title: str = ""
    tracks: list[Track]
    requested_audio: list[str] = Field(default_factory=list)
    requested_subtitles: list[str] = Field(default_factory=list)

    class Config:
        str_strip_whitespace = True

    @model_validator(mode="after")
    def validate_tracks(self) -> "DownloadJob":
        ids = [t.id for t in self.tracks]
        if len(ids) != len(set(ids)):
            raise ValueError("Track ids must be unique within a job.")
        if not self.videos and not self.audios:
            raise ValueError("A job needs at least one video or audio track.")
        return self

    def _of_kind(self, kind: TrackKind) -> list[Track]:
        return [t for t in self.tracks if t.kind == kind]

    @property
    def videos(self) -> list[Track]:
        return self._of_kind(TrackKind.VIDEO)

    @property
    def audios(self) -> list[Track]:
        return self._of_kind(TrackKind.AUDIO)

    @property
    def subtitles(self) -> list[Track]:
        return self._of_kind(TrackKind.SUBTITLE)
