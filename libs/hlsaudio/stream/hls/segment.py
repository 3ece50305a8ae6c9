from __future__ import annotations

from typing import NamedTuple, Union


class KeyInfo(NamedTuple):
    """``#EXT-X-KEY``. ``iv`` is ``None`` when it has to be derived from the sequence number."""

    method: str
    uri: str | None
    iv: bytes | None

    @property
    def encrypted(self) -> bool:
        return bool(self.method) and self.method != "NONE"


class MapInfo(NamedTuple):
    """``#EXT-X-MAP``, the initialization section emitted before the segments referencing it."""

    uri: str | None


class Segment(NamedTuple):
    uri: str
    duration: float
    key: KeyInfo | None
    map: MapInfo | None
    num: int
    discontinuity: bool = False


class Variant(NamedTuple):
    """One ``#EXT-X-STREAM-INF`` entry of a master playlist."""

    uri: str
    bandwidth: int
    codecs: str
    audio: str | None = None


class MasterPlaylist(NamedTuple):
    """Variants, ordered by bandwidth, highest first."""

    variants: list[Variant]

    @property
    def is_master(self) -> bool:
        return True


class MediaPlaylist(NamedTuple):
    segments: list[Segment]
    media_sequence: int = 0
    target_duration: float = 5.0
    is_live: bool = False

    @property
    def is_master(self) -> bool:
        return False


PlaylistResult = Union[MasterPlaylist, MediaPlaylist]


__all__ = [
    "KeyInfo",
    "MapInfo",
    "MasterPlaylist",
    "MediaPlaylist",
    "PlaylistResult",
    "Segment",
    "Variant",
]
