from __future__ import annotations

import logging
import re
from binascii import Error as BinasciiError, unhexlify
from typing import TYPE_CHECKING, ClassVar

from hlsaudio.exceptions import MalformedPlaylist
from hlsaudio.stream.hls.segment import (
    KeyInfo,
    MapInfo,
    MasterPlaylist,
    MediaPlaylist,
    PlaylistResult,
    Segment,
    Variant,
)
from hlsaudio.utils.url import absolute_url


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence


log = logging.getLogger(".".join(__name__.split(".")[:-1]))

AUDIO_CODECS = ("mp4a", "opus")
VIDEO_CODECS = ("avc1",)

_tag_re = re.compile(r"#(?P<tag>[\w-]+)(?::(?P<value>.*))?$")
_attr_re = re.compile(r"""
    (?P<key>[A-Za-z0-9-]+)
    =
    (?:
        "(?P<quoted>[^"]*)"
        |
        (?P<bare>[^,]*)
    )
""", re.VERBOSE)


def parse_tag(tag: str):
    def decorator(func: Callable[[M3U8Parser, str], None]) -> Callable[[M3U8Parser, str], None]:
        setattr(func, "_tag", tag)
        return func

    return decorator


class M3U8ParserMeta(type):
    def __init__(cls, name, bases, namespace, **kwargs):
        super().__init__(name, bases, namespace, **kwargs)

        # inherit tag handlers of the parent classes
        tags = dict(**getattr(cls, "_TAGS", {}))
        cls._TAGS = tags

        for member in namespace.values():
            tag = getattr(member, "_tag", None)
            if type(tag) is str:
                tags[tag] = member


class M3U8Parser(metaclass=M3U8ParserMeta):
    """
    Parser for the subset of the HLS playlist format needed for audio playback.

    The same parser instance can be reused, :meth:`parse` resets its state.
    """

    _TAGS: ClassVar[Mapping[str, Callable[[M3U8Parser, str], None]]]

    def __init__(self, base_uri: str | None = None):
        self.base_uri = base_uri
        self.reset()

    def reset(self) -> None:
        self.variants: list[Variant] = []
        self.segments: list[Segment] = []
        self.media_sequence: int = 0
        self.target_duration: float = 5.0
        self.is_endlist: bool = False

        self._key: KeyInfo | None = None
        self._map: MapInfo | None = None
        self._discontinuity: bool = False
        self._stream_info: dict[str, str] | None = None
        self._extinf: tuple[float, KeyInfo | None, MapInfo | None, bool] | None = None

    # ---- attribute helpers

    @staticmethod
    def parse_attributes(value: str) -> dict[str, str]:
        """``KEY=VALUE`` pairs, values either double-quoted or bare. Keys are upper-cased."""
        attributes = {}
        for match in _attr_re.finditer(value):
            quoted = match.group("quoted")
            attributes[match.group("key").upper()] = quoted if quoted is not None else match.group("bare").strip()

        return attributes

    @staticmethod
    def parse_hex(value: str | None) -> bytes | None:
        if not value or value[:2] not in ("0x", "0X"):
            return None

        digits = value[2:]
        if len(digits) > 32:
            raise MalformedPlaylist(f"IV is longer than 16 bytes: {value}")

        try:
            return unhexlify(digits.zfill(32))
        except (BinasciiError, ValueError) as err:
            raise MalformedPlaylist(f"Invalid IV: {value}") from err

    def uri(self, uri: str) -> str:
        if self.base_uri:
            return absolute_url(self.base_uri, uri)

        return uri

    # ---- tags

    @parse_tag("EXT-X-STREAM-INF")
    def parse_tag_ext_x_stream_inf(self, value: str) -> None:
        self._stream_info = self.parse_attributes(value)

    @parse_tag("EXT-X-MEDIA-SEQUENCE")
    def parse_tag_ext_x_media_sequence(self, value: str) -> None:
        try:
            self.media_sequence = int(value.strip())
        except ValueError:
            log.debug(f"Ignoring invalid media sequence: {value}")

    @parse_tag("EXT-X-TARGETDURATION")
    def parse_tag_ext_x_targetduration(self, value: str) -> None:
        try:
            self.target_duration = float(value.strip())
        except ValueError:
            log.debug(f"Ignoring invalid target duration: {value}")

    @parse_tag("EXT-X-ENDLIST")
    def parse_tag_ext_x_endlist(self, value: str) -> None:
        self.is_endlist = True

    @parse_tag("EXT-X-DISCONTINUITY")
    def parse_tag_ext_x_discontinuity(self, value: str) -> None:
        self._discontinuity = True

    @parse_tag("EXT-X-KEY")
    def parse_tag_ext_x_key(self, value: str) -> None:
        attr = self.parse_attributes(value)
        method = attr.get("METHOD", "NONE")
        if method == "NONE":
            self._key = None
            return

        uri = attr.get("URI")
        self._key = KeyInfo(
            method=method,
            uri=self.uri(uri) if uri else None,
            iv=self.parse_hex(attr.get("IV")),
        )

    @parse_tag("EXT-X-MAP")
    def parse_tag_ext_x_map(self, value: str) -> None:
        uri = self.parse_attributes(value).get("URI")
        self._map = MapInfo(uri=self.uri(uri) if uri else None)

    @parse_tag("EXTINF")
    def parse_tag_extinf(self, value: str) -> None:
        try:
            duration = float(value.split(",", 1)[0].strip())
        except ValueError:
            duration = 0.0

        self._extinf = (duration, self._key, self._map, self._discontinuity)
        self._discontinuity = False

    # ----

    def parse_line(self, line: str) -> None:
        if line.startswith("#"):
            match = _tag_re.match(line)
            if not match:
                return
            handler = self._TAGS.get(match.group("tag"))
            if handler:
                handler(self, match.group("value") or "")
            return

        if self._stream_info is not None:
            attr, self._stream_info = self._stream_info, None
            try:
                bandwidth = int(attr.get("BANDWIDTH", "0"))
            except ValueError:
                bandwidth = 0
            self.variants.append(Variant(
                uri=self.uri(line),
                bandwidth=bandwidth,
                codecs=attr.get("CODECS", ""),
                audio=attr.get("AUDIO"),
            ))

        elif self._extinf is not None:
            (duration, key, segment_map, discontinuity), self._extinf = self._extinf, None
            self.segments.append(Segment(
                uri=self.uri(line),
                duration=duration,
                key=key,
                map=segment_map,
                num=len(self.segments),
                discontinuity=discontinuity,
            ))

    def parse(self, data: str) -> PlaylistResult:
        if "#EXT" not in data:
            raise MalformedPlaylist("Invalid HLS playlist")

        self.reset()
        lines = [line.strip() for line in data.splitlines()]
        lines = [line for line in lines if line]
        is_master = any(line.startswith("#EXT-X-STREAM-INF") for line in lines)

        for line in lines:
            self.parse_line(line)

        if is_master:
            return MasterPlaylist(
                variants=sorted(self.variants, key=lambda variant: variant.bandwidth, reverse=True),
            )

        # sequence numbers are assigned at the end, the media sequence tag may follow other tags
        return MediaPlaylist(
            segments=[segment._replace(num=self.media_sequence + idx) for idx, segment in enumerate(self.segments)],
            media_sequence=self.media_sequence,
            target_duration=self.target_duration,
            is_live=not self.is_endlist,
        )


def parse_m3u8(data: str, base_uri: str | None = None, parser: type[M3U8Parser] = M3U8Parser) -> PlaylistResult:
    """
    Parse playlist text into a :class:`MasterPlaylist` or a :class:`MediaPlaylist`.

    :param data: The playlist text
    :param base_uri: The URL the playlist was fetched from, relative URIs are resolved against it
    :param parser: The parser class
    :raises MalformedPlaylist: if the text does not contain any HLS tag
    """
    return parser(base_uri).parse(data)


def _has_codec(codecs: str, tags: Iterable[str]) -> bool:
    return any(tag in codecs for tag in tags)


def select_variant(variants: Sequence[Variant]) -> Variant | None:
    """
    Pick the variant to play.

    1. the highest bandwidth variant with an audio codec and without a video codec
    2. the highest bandwidth variant with an audio codec
    3. the first listed variant

    Ties in bandwidth keep the listed order.
    """
    for accept in (
        lambda v: _has_codec(v.codecs, AUDIO_CODECS) and not _has_codec(v.codecs, VIDEO_CODECS),
        lambda v: _has_codec(v.codecs, AUDIO_CODECS),
    ):
        best: Variant | None = None
        for variant in variants:
            if accept(variant) and (best is None or variant.bandwidth > best.bandwidth):
                best = variant
        if best is not None:
            return best

    return variants[0] if variants else None


__all__ = ["M3U8Parser", "parse_m3u8", "parse_tag", "select_variant", "AUDIO_CODECS", "VIDEO_CODECS"]
