from __future__ import annotations


class HLSAudioError(Exception):
    """Any error caused by hlsaudio will be caught with this exception."""


class PluginError(HLSAudioError):
    """Plugin related error, e.g. the media-resolution endpoint returned garbage."""


class StreamError(HLSAudioError):
    """Stream related error."""


class MalformedPlaylist(StreamError):
    """The playlist text is not HLS, or it is the wrong kind of playlist."""


class FetchError(StreamError):
    """A key, map or segment request did not succeed."""


class AuthorizationExpired(FetchError):
    """
    The server answered ``403 Forbidden``: the signed playlist URL has expired.

    Not a fault. The owner of the stream is expected to fetch a fresh URL
    and restart at :attr:`position` (milliseconds).
    """

    def __init__(self, *args, position: int | None = None):
        super().__init__(*args)
        self.position = position


class TransientFetchFailure(FetchError):
    """Network error or non-2xx status other than 403. Safe to retry."""

    def __init__(self, *args, status_code: int | None = None):
        super().__init__(*args)
        self.status_code = status_code


class DecryptionFailure(StreamError):
    """Unsupported cipher, missing key URI, bad key material or corrupt ciphertext."""


class SeekRequested(HLSAudioError):
    """Control signal: the current stream was aborted because a seek to :attr:`position` was requested."""

    def __init__(self, position: int):
        super().__init__(f"Seek requested to {position}ms")
        self.position = position


class PlaybackFailure(HLSAudioError):
    """The single fatal error surfaced to the listener of a track."""


__all__ = [
    "AuthorizationExpired",
    "DecryptionFailure",
    "FetchError",
    "HLSAudioError",
    "MalformedPlaylist",
    "PlaybackFailure",
    "PluginError",
    "SeekRequested",
    "StreamError",
    "TransientFetchFailure",
]
