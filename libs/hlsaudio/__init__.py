"""
hlsaudio plays encrypted, segmented HLS audio tracks whose signed URLs expire during playback.

The main entry points are :class:`hlsaudio.session.HLSAudioSession`, which carries the HTTP client
and the options, and :class:`hlsaudio.stream.hls.track.HLSTrack`, which drives the playback of one track.
"""

__title__ = "hlsaudio"
__version__ = "1.0.0"
