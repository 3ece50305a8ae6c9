from __future__ import annotations

from typing import Any

from hlsaudio.session.http import HTTPSession
from hlsaudio.session.options import HLSAudioOptions


class HLSAudioSession:
    """
    Holds the HTTP client and the options shared by every stream and track created from it.
    """

    def __init__(self, options: dict[str, Any] | None = None):
        """
        :param options: Custom options, see :class:`HLSAudioOptions` for the available keys
        """

        #: An instance of hlsaudio's :class:`requests.Session` subclass.
        self.http = HTTPSession()
        #: Options of this session instance.
        self.options: HLSAudioOptions = HLSAudioOptions(self)
        if options:
            self.options.update(options)

    def set_option(self, key: str, value: Any) -> None:
        """Sets general options used by streams and tracks originating from this session"""
        self.options.set(key, value)

    def get_option(self, key: str) -> Any:
        """Returns the current value of the specified option"""
        return self.options.get(key)
