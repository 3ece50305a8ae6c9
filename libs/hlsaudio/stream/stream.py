from __future__ import annotations

import io
import json
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from hlsaudio.session import HLSAudioSession


class Stream:
    """
    This is a base class that should be inherited when implementing
    different stream types. Should only be created by plugins or controllers.
    """

    __shortname__ = "stream"

    def __init__(self, session: HLSAudioSession):
        """
        :param session: Session instance used by the stream
        """

        self.session: HLSAudioSession = session

    def __repr__(self):
        return f"<{self.__class__.__name__}()>"

    def __json__(self):  # noqa: PLW3201
        return dict(type=self.shortname())

    @property
    def json(self):
        obj = self.__json__()
        return json.dumps(obj)

    @classmethod
    def shortname(cls):
        return cls.__shortname__

    def to_url(self):
        raise TypeError(f"<{self.__class__.__name__} [{self.shortname()}]> cannot be translated to a URL")

    def open(self) -> StreamIO:
        """
        Attempts to open a connection to the stream.
        Returns a file-like object that can be used to read the stream data.

        :raises StreamError: on failure
        """

        raise NotImplementedError


class StreamIO(io.RawIOBase):
    def readable(self) -> bool:
        return True
