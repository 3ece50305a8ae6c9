from __future__ import annotations

import io
import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO, ClassVar

from hlsaudio.exceptions import AuthorizationExpired, HLSAudioError, PlaybackFailure, SeekRequested
from hlsaudio.stream.hls.hls import Epoch, HLSStream


if TYPE_CHECKING:
    from collections.abc import Callable

    from hlsaudio.session import HLSAudioSession
    from hlsaudio.stream.hls.hls import HLSStreamReader


log = logging.getLogger(".".join(__name__.split(".")[:-1]))


class TrackState(Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    STREAMING = "streaming"
    RESTARTING = "restarting"
    DONE = "done"
    FAILED = "failed"


class HLSTrack:
    """
    Plays one track from start to end, transparently restarting the stream
    whenever its signed URL expires or a seek is requested.

    ``resolver`` returns a fresh playlist URL and is called before every stream attempt.
    ``decoder`` consumes the audio bytes, it returns once the stream is exhausted.
    Restarts are not limited.
    """

    __stream__: ClassVar[type[HLSStream]] = HLSStream

    def __init__(
        self,
        session: HLSAudioSession,
        resolver: Callable[[], str],
        decoder: Callable[[BinaryIO], None],
        name: str | None = None,
    ):
        self.session = session
        self.resolver = resolver
        self.decoder = decoder
        self.name = name
        self.epoch = Epoch()
        self.state: TrackState = TrackState.IDLE
        self.stream: HLSStream | None = None
        self.restarts: int = 0
        self.buffer_size: int = int(session.options.get("decoder-buffer-size"))
        self.client_info: str = session.options.get("client-info")

        self._lock = threading.Lock()
        self._last_position: int = 0
        self._seek_target: int | None = None
        self._expired: bool = False

    def __repr__(self):
        return f"<{self.__class__.__name__}({self.name!r}, state={self.state})>"

    def _set_state(self, state: TrackState) -> None:
        log.debug(f"{self.client_info} Track state: {state.value}")
        self.state = state

    @property
    def position(self) -> int:
        """Current playback position in milliseconds."""
        stream = self.stream
        reader = stream.reader if stream is not None else None
        if reader is not None:
            return reader.get_position()

        return self._last_position

    @property
    def restart_pending(self) -> bool:
        with self._lock:
            return self._seek_target is not None or self._expired

    # ---- listener interface of the streams

    def on_authorization_expired(self, reader: HLSStreamReader) -> None:
        log.debug(f"{self.client_info} Authorization expired at {reader.get_position()}ms")
        with self._lock:
            self._expired = True

    def on_seek_requested(self, reader: HLSStreamReader, position: int) -> None:
        with self._lock:
            self._seek_target = position

    # ----

    def seek(self, position: int) -> None:
        """
        Request playback to continue at ``position`` (ms). Can be called from any thread.
        """
        log.debug(f"{self.client_info} Seek to {position}ms requested")
        with self._lock:
            self._seek_target = max(0, position)
            stream = self.stream

        reader = stream.reader if stream is not None else None
        if reader is not None:
            reader.seek_to(max(0, position))

    def _open(self, position: int) -> HLSStreamReader:
        url = self.resolver()
        log.debug(f"{self.client_info} Opening stream at {position}ms: {url}")
        stream = self.__stream__(
            self.session,
            url,
            start_position=position,
            listener=self,
            epoch=self.epoch,
            name=self.name,
        )
        with self._lock:
            self.stream = stream

        return stream.open()

    def _close_stream(self) -> None:
        with self._lock:
            stream, self.stream = self.stream, None
        if stream is not None:
            stream.close()

    def _restart(self, err: HLSAudioError | None = None) -> None:
        with self._lock:
            seek_target, self._seek_target = self._seek_target, None
            expired, self._expired = self._expired, False

        if seek_target is None and isinstance(err, SeekRequested):
            seek_target = err.position

        if seek_target is not None:
            position = seek_target
        elif isinstance(err, AuthorizationExpired) and err.position is not None:
            position = err.position
        else:
            position = self.position

        self._set_state(TrackState.RESTARTING)
        self._last_position = position
        self.restarts += 1
        self.epoch.advance()
        log.debug(
            f"{self.client_info} Restarting stream at {position}ms "
            + f"(seek={seek_target is not None}, expired={expired or isinstance(err, AuthorizationExpired)}, "
            + f"restarts={self.restarts})",
        )

    def _fail(self, err: Exception) -> None:
        self._set_state(TrackState.FAILED)
        log.error(f"{self.client_info} Playback failed: {err}")
        raise PlaybackFailure(f"Playback failed: {err}") from err

    def play(self) -> None:
        """
        Run the playback loop on the calling thread until the decoder has consumed the whole track.

        :raises PlaybackFailure: on any error other than an expired authorization or a seek
        """
        while True:
            self._set_state(TrackState.RESOLVING)
            try:
                reader = self._open(self._last_position)
            except (AuthorizationExpired, SeekRequested) as err:
                self._restart(err)
                self._close_stream()
                continue
            except Exception as err:
                self._close_stream()
                self._fail(err)

            if self.restart_pending:
                self._restart()
                self._close_stream()
                continue

            self._set_state(TrackState.STREAMING)
            try:
                with io.BufferedReader(reader, self.buffer_size) as fd:
                    self.decoder(fd)
            except (AuthorizationExpired, SeekRequested) as err:
                self._restart(err)
                continue
            except Exception as err:
                # decoders may wrap the control signals in their own errors
                if self.restart_pending:
                    self._restart()
                    continue
                self._fail(err)
            else:
                if self.restart_pending:
                    self._restart()
                    continue
                self._last_position = self.position
                self._set_state(TrackState.DONE)
                log.debug(f"{self.client_info} Track finished after {self.restarts} restarts")
                return
            finally:
                self._close_stream()
