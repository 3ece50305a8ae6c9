from hlsaudio.stream.hls import HLSStream, HLSTrack
from hlsaudio.stream.stream import Stream, StreamIO


__all__ = ["HLSStream", "HLSTrack", "Stream", "StreamIO"]
