from hlsaudio.stream.hls.fetcher import SegmentFetcher
from hlsaudio.stream.hls.hls import Epoch, HLSStream, HLSStreamReader, HLSStreamWorker
from hlsaudio.stream.hls.m3u8 import M3U8Parser, parse_m3u8, select_variant
from hlsaudio.stream.hls.segment import (
    KeyInfo,
    MapInfo,
    MasterPlaylist,
    MediaPlaylist,
    PlaylistResult,
    Segment,
    Variant,
)
from hlsaudio.stream.hls.track import HLSTrack, TrackState


__all__ = [
    "Epoch",
    "HLSStream",
    "HLSStreamReader",
    "HLSStreamWorker",
    "HLSTrack",
    "KeyInfo",
    "M3U8Parser",
    "MapInfo",
    "MasterPlaylist",
    "MediaPlaylist",
    "PlaylistResult",
    "Segment",
    "SegmentFetcher",
    "TrackState",
    "Variant",
    "parse_m3u8",
    "select_variant",
]
