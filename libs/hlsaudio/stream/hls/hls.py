from __future__ import annotations

import contextlib
import logging
import queue
import threading
from typing import TYPE_CHECKING, Any, ClassVar, NamedTuple, Protocol

from hlsaudio.exceptions import (
    AuthorizationExpired,
    HLSAudioError,
    MalformedPlaylist,
    SeekRequested,
    StreamError,
    TransientFetchFailure,
)
from hlsaudio.stream.hls.fetcher import SegmentFetcher
from hlsaudio.stream.hls.m3u8 import M3U8Parser, parse_m3u8, select_variant
from hlsaudio.stream.hls.segment import MasterPlaylist
from hlsaudio.stream.stream import Stream, StreamIO


if TYPE_CHECKING:
    from hlsaudio.session import HLSAudioSession
    from hlsaudio.stream.hls.segment import MediaPlaylist, PlaylistResult, Segment


log = logging.getLogger(".".join(__name__.split(".")[:-1]))

#: Sequence number of queued initialization sections, they never advance the position
MAP_SEQUENCE = -1
#: Sequence number of queue items without media data: end of stream, or an abort if ``error`` is set
CONTROL_SEQUENCE = -2


class SegmentData(NamedTuple):
    data: bytes
    num: int
    epoch: int
    error: HLSAudioError | None = None


class StreamListener(Protocol):
    """Receives the events which require the owner of a stream to restart it."""

    def on_authorization_expired(self, reader: HLSStreamReader) -> None: ...

    def on_seek_requested(self, reader: HLSStreamReader, position: int) -> None: ...


class Epoch:
    """
    Restart counter shared between a track and the streams it creates.

    Queue items are tagged with the value current when the worker was started,
    advancing it turns every item still in flight into stale data.
    """

    def __init__(self, value: int = 0):
        self._lock = threading.Lock()
        self._value = value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def advance(self) -> int:
        with self._lock:
            self._value += 1
            return self._value


class HLSStreamWorker(threading.Thread):
    """
    Producer thread: fetches the segments in playlist order and puts their decrypted data
    into the reader's bounded queue, blocking while it is full.
    """

    def __init__(self, reader: HLSStreamReader, start_index: int = 0, name: str | None = None) -> None:
        super().__init__(daemon=True, name=f"Thread-{self.__class__.__name__}{f'-{name}' if name else ''}")
        options = reader.session.options

        self.reader = reader
        self.session = reader.session
        self.queue = reader.queue
        self.segments: list[Segment] = reader.segments
        self.start_index = start_index
        self.processed: set[int] = set(reader.processed)
        self.last_map_uri: str | None = None
        self.epoch: int = reader.epoch.value
        self.closed = False
        self.throttle: float = float(options.get("hls-worker-throttle"))
        self.client_info: str = options.get("client-info")
        self.fetcher = SegmentFetcher(self.session, wait=self.wait)

        self._wait = threading.Event()

    def close(self) -> None:
        """
        Shuts down the thread. Blocking waits return immediately and nothing else gets queued.
        """
        if self.closed:  # pragma: no cover
            return

        log.debug(f"{self.client_info} Closing worker thread")

        self.closed = True
        self._wait.set()

    def wait(self, time: float) -> bool:
        """
        Pauses the thread for a specified time.

        :return: Whether the thread should continue running.
        """
        return not self._wait.wait(time)

    @property
    def superseded(self) -> bool:
        return self.closed or self.epoch != self.reader.epoch.value

    def put(self, item: SegmentData) -> bool:
        while not self.superseded:
            try:
                self.queue.put(item, timeout=self.throttle)
                return True
            except queue.Full:
                continue

        return False

    def put_map(self, segment: Segment) -> None:
        try:
            data = self.fetcher.fetch_map(segment.map, segment.key, segment.num)
        except TransientFetchFailure as err:
            log.warning(f"{self.client_info} Init segment fetch failed: {err}")
            return

        if data is not None and self.put(SegmentData(data, MAP_SEQUENCE, self.epoch)):
            self.last_map_uri = segment.map.uri

    def iter_segments(self) -> None:
        for segment in self.segments[self.start_index:]:
            if self.superseded:
                return
            if segment.num in self.processed:
                continue

            if segment.map is not None and segment.map.uri != self.last_map_uri:
                self.put_map(segment)

            data = self.fetcher.fetch_segment(segment)
            if not self.put(SegmentData(data, segment.num, self.epoch)):
                return
            self.processed.add(segment.num)
            log.debug(f"{self.client_info} Segment {segment.num} queued")

            # let the reader catch up before fetching the next segment
            while self.queue.qsize() >= self.queue.maxsize and not self.superseded:
                self.wait(self.throttle)

    def run(self) -> None:
        try:
            self.iter_segments()
        except AuthorizationExpired as err:
            if self.superseded:
                return
            log.debug(f"{self.client_info} Authorization expired, aborting stream")
            self.reader.on_authorization_expired()
            self.put(SegmentData(b"", CONTROL_SEQUENCE, self.epoch, err))
        except StreamError as err:
            if self.superseded:
                return
            log.error(f"{self.client_info} Stream aborted: {err}")
            self.put(SegmentData(b"", CONTROL_SEQUENCE, self.epoch, err))
        else:
            self.put(SegmentData(b"", CONTROL_SEQUENCE, self.epoch))
        finally:
            self.fetcher.key_cache.clear()


class HLSStreamReader(StreamIO):
    """
    Consumer side: a raw, sequential byte stream draining the worker's queue.

    Errors raised by the worker are delivered in order, after all data queued before them.
    """

    __worker__: ClassVar[type[HLSStreamWorker]] = HLSStreamWorker

    def __init__(self, stream: HLSStream, listener: StreamListener | None = None, epoch: Epoch | None = None):
        super().__init__()
        options = stream.session.options

        self.stream = stream
        self.session = stream.session
        self.listener = listener
        self.epoch = epoch if epoch is not None else Epoch()
        self.timeout: float = float(options.get("hls-read-timeout"))
        self.client_info: str = options.get("client-info")
        self.queue: queue.Queue[SegmentData] = queue.Queue(maxsize=int(options.get("hls-segment-queue-size")))
        self.worker: HLSStreamWorker | None = None

        self.playlist: MediaPlaylist | None = None
        self.segments: list[Segment] = []
        #: Start of every segment and the playlist's end, in milliseconds
        self.boundaries: list[int] = [0]
        self.processed: set[int] = set()
        #: Number of segments consumed so far, skipped ones included
        self.index: int = 0
        self.seek_target: int | None = None

        self._chunk: SegmentData | None = None
        self._chunk_pos: int = 0
        self._error: HLSAudioError | None = None
        self._eof: bool = False

    def open(self) -> None:
        self.playlist = self.stream.load_media_playlist()
        self.segments = self.playlist.segments
        self.boundaries = self.segment_boundaries(self.segments)

        if self.segments:
            first, last = self.segments[0], self.segments[-1]
            if first.key is not None and first.key.encrypted:
                log.debug(f"{self.client_info} Segments in this playlist are encrypted")
            log.debug(f"{self.client_info} First Sequence: {first.num}; Last Sequence: {last.num}")

        if self.stream.start_position > 0:
            self.skip_to_position(self.stream.start_position)

        self.worker = self.__worker__(self, start_index=self.index, name=self.stream.name)
        self.worker.start()

    @staticmethod
    def segment_boundaries(segments: list[Segment]) -> list[int]:
        """Cumulative segment start times in milliseconds, rounded once so positions map back to the same segment."""
        boundaries = [0]
        elapsed = 0.0
        for segment in segments:
            elapsed += segment.duration
            boundaries.append(round(elapsed * 1000))

        return boundaries

    def skip_to_position(self, position: int) -> None:
        """Mark every segment ending at or before ``position`` (ms) as already processed."""
        self.index = 0
        while self.index < len(self.segments) and self.boundaries[self.index + 1] <= position:
            self.processed.add(self.segments[self.index].num)
            self.index += 1

        log.debug(f"{self.client_info} Skip to {position}ms, starting at segment {self.index}")

    def get_position(self) -> int:
        """Elapsed playback time in milliseconds: the start of the segment being consumed."""
        return self.boundaries[self.index]

    @property
    def position(self) -> int:
        return self.get_position()

    def available(self) -> int:
        if self._chunk is None:
            return 0

        return len(self._chunk.data) - self._chunk_pos

    def on_authorization_expired(self) -> None:
        if self.listener is not None:
            self.listener.on_authorization_expired(self)

    def seek_to(self, position: int) -> None:
        """
        Abort this stream because of a seek to ``position`` (ms).

        The next read raises :class:`SeekRequested`, the owner restarts the stream at that position.
        """
        log.debug(f"{self.client_info} Seek to {position}ms")
        self.seek_target = position
        if self.worker is not None:
            self.worker.close()
        self._clear_queue()
        # wake up a reader blocked on the queue, which also checks seek_target on its own
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(SegmentData(b"", CONTROL_SEQUENCE, self.epoch.value, SeekRequested(position)))

        if self.listener is not None:
            self.listener.on_seek_requested(self, position)

    def _clear_queue(self) -> None:
        with self.queue.mutex:
            self.queue.queue.clear()
            self.queue.not_full.notify_all()

    def _finish_chunk(self) -> None:
        if self._chunk is not None and self._chunk.num >= 0:
            self.index = min(self.index + 1, len(self.segments))
        self._chunk = None
        self._chunk_pos = 0

    def _poll(self) -> None:
        try:
            item = self.queue.get(timeout=self.timeout)
        except queue.Empty:
            if self.index >= len(self.segments) or self.worker is None or not self.worker.is_alive():
                log.debug(f"{self.client_info} No more segments")
                self._eof = True
            return

        if item.epoch != self.epoch.value:
            log.debug(f"{self.client_info} Discarding stale segment {item.num} (epoch {item.epoch})")
            return

        if item.num == CONTROL_SEQUENCE:
            if item.error is None:
                self._eof = True
                return
            if isinstance(item.error, AuthorizationExpired):
                item.error.position = self.get_position()
            self._error = item.error
            return

        self._chunk = item
        self._chunk_pos = 0

    def readinto(self, b: Any) -> int:
        """
        Copy data of the current chunk into ``b``, blocking for the next queued chunk only when it is exhausted.

        A chunk only counts as consumed, and the position only moves forward, once the next read starts.
        """
        view = memoryview(b).cast("B")
        if not len(view):
            return 0

        while True:
            if self.seek_target is not None:
                raise SeekRequested(self.seek_target)

            remaining = self.available()
            if remaining:
                size = min(remaining, len(view))
                view[:size] = self._chunk.data[self._chunk_pos:self._chunk_pos + size]
                self._chunk_pos += size
                return size

            self._finish_chunk()

            if self._error is not None:
                raise self._error

            if self._eof or self.closed:
                return 0

            self._poll()

    def close(self) -> None:
        if self.closed:
            return

        log.debug(f"{self.client_info} Closing reader")
        if self.worker is not None:
            self.worker.close()
        self._clear_queue()
        if self.worker is not None and self.worker.is_alive() and self.worker is not threading.current_thread():
            self.worker.join(timeout=self.timeout)
        self._chunk = None
        super().close()


class HLSStream(Stream):
    """
    An encrypted, segmented HLS audio stream, read from a given position until the playlist's end.
    """

    __shortname__ = "hls"
    __reader__: ClassVar[type[HLSStreamReader]] = HLSStreamReader
    __parser__: ClassVar[type[M3U8Parser]] = M3U8Parser

    def __init__(
        self,
        session: HLSAudioSession,
        url: str,
        start_position: int = 0,
        listener: StreamListener | None = None,
        epoch: Epoch | None = None,
        name: str | None = None,
        **kwargs,
    ):
        """
        :param session: Session instance
        :param url: The URL of the master or media playlist
        :param start_position: Milliseconds to skip from the beginning
        :param listener: Notified when the stream has to be restarted
        :param epoch: Restart counter of the owner, a private one is used if not set
        :param name: Optional name suffix for the stream's worker thread
        :param kwargs: Additional keyword arguments passed to :meth:`requests.Session.request` for playlist requests
        """

        super().__init__(session)
        self.url = url
        self.args = kwargs
        self.start_position = start_position
        self.listener = listener
        self.epoch = epoch
        self.name = name
        self.media_url: str | None = None
        self.reader: HLSStreamReader | None = None

    def __repr__(self):
        return f"<{self.__class__.__name__}({self.url!r}, start_position={self.start_position})>"

    def __json__(self):  # noqa: PLW3201
        json = super().__json__()
        json["url"] = self.url
        json["start_position"] = self.start_position
        if self.media_url:
            json["media"] = self.media_url

        return json

    def to_url(self):
        return self.url

    @classmethod
    def fetch_playlist(cls, session: HLSAudioSession, url: str, **request_args) -> PlaylistResult:
        res = session.http.get(url, exception=StreamError, raise_for_status=False, **request_args)
        try:
            if res.status_code != 200:
                raise StreamError(f"Playlist fetch failed: {res.status_code}")
            res.encoding = "utf-8"

            return parse_m3u8(res.text, base_uri=url, parser=cls.__parser__)
        finally:
            with contextlib.suppress(Exception):
                res.close()

    def load_media_playlist(self) -> MediaPlaylist:
        """
        Fetch the playlist, going through the variant selection first if it is a master playlist.
        """
        client_info = self.session.options.get("client-info")
        url = self.url
        playlist = self.fetch_playlist(self.session, url, **self.args)

        if isinstance(playlist, MasterPlaylist):
            variant = select_variant(playlist.variants)
            if variant is None:
                raise MalformedPlaylist("No suitable variant found")
            log.debug(f"{client_info} Selected variant: bandwidth={variant.bandwidth}, codecs={variant.codecs}")

            url = variant.uri
            playlist = self.fetch_playlist(self.session, url, **self.args)
            if isinstance(playlist, MasterPlaylist):
                raise MalformedPlaylist("Expected media playlist")

        self.media_url = url

        return playlist

    def open(self) -> HLSStreamReader:
        reader = self.__reader__(self, listener=self.listener, epoch=self.epoch)
        try:
            reader.open()
        except Exception:
            reader.close()
            raise
        self.reader = reader

        return reader

    def close(self) -> None:
        try:
            if self.reader is not None:
                self.reader.close()
        finally:
            # Always drop the reference afterwards
            self.reader = None
