"""Tests for the track controller: restarts on expiry and seek, fatal failures."""

from __future__ import annotations

from typing import BinaryIO
from unittest.mock import Mock

import pytest
import requests_mock as rm

from hlsaudio.exceptions import AuthorizationExpired, PlaybackFailure, PluginError, TransientFetchFailure
from hlsaudio.stream.hls.track import HLSTrack, TrackState
from tests.helpers import count_requests, media_playlist

BASE = "https://cdn.test/track/"
SEGMENTS = [bytes([n]) * 100 for n in range(3)]


def playlist_url(token: int) -> str:
    return f"{BASE}index.m3u8?token={token}"


def segment_url(num: int, token: int) -> str:
    return f"{BASE}seg{num}.ts?token={token}"


def register_token(requests_mock: rm.Mocker, token: int) -> None:
    requests_mock.get(playlist_url(token), text=media_playlist(*[(10, f"seg{num}.ts?token={token}") for num in range(3)]))
    for num, data in enumerate(SEGMENTS):
        requests_mock.get(segment_url(num, token), content=data)


class RecordingTrack(HLSTrack):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.states: list[TrackState] = []

    def _set_state(self, state: TrackState) -> None:
        self.states.append(state)
        super()._set_state(state)


class Decoder:
    """Collects everything it reads, calls ``on_chunk`` after every chunk."""

    def __init__(self, on_chunk=None):
        self.output: list[bytes] = []
        self.calls = 0
        self.on_chunk = on_chunk

    def __call__(self, fd: BinaryIO) -> None:
        self.calls += 1
        while data := fd.read1(65536):
            self.output.append(data)
            if self.on_chunk:
                self.on_chunk(len(self.output))


@pytest.fixture
def resolver() -> Mock:
    return Mock(side_effect=[playlist_url(token) for token in range(1, 10)])


def test_initial_state(session, resolver: Mock) -> None:
    track = HLSTrack(session, resolver, Decoder(), name="track")

    assert track.state is TrackState.IDLE
    assert repr(track) == "<HLSTrack('track', state=TrackState.IDLE)>"
    assert track.position == 0


def test_play(session, requests_mock: rm.Mocker, resolver: Mock) -> None:
    """Test a track without interruptions."""
    register_token(requests_mock, 1)
    decoder = Decoder()
    track = RecordingTrack(session, resolver, decoder)

    track.play()

    assert decoder.output == SEGMENTS
    assert track.states == [TrackState.RESOLVING, TrackState.STREAMING, TrackState.DONE]
    assert track.state is TrackState.DONE
    assert track.restarts == 0
    assert track.position == 30000
    assert track.stream is None
    assert resolver.call_count == 1


def test_restart_on_expiry(session, requests_mock: rm.Mocker, resolver: Mock) -> None:
    """Test an expired URL on the second segment resumes at the second segment with a fresh URL."""
    register_token(requests_mock, 1)
    register_token(requests_mock, 2)
    requests_mock.get(segment_url(1, 1), status_code=403)
    decoder = Decoder()
    track = RecordingTrack(session, resolver, decoder)

    track.play()

    assert decoder.output == SEGMENTS
    assert decoder.calls == 2
    assert track.states == [
        TrackState.RESOLVING,
        TrackState.STREAMING,
        TrackState.RESTARTING,
        TrackState.RESOLVING,
        TrackState.STREAMING,
        TrackState.DONE,
    ]
    assert track.restarts == 1
    assert track.epoch.value == 1
    assert resolver.call_count == 2
    assert count_requests(requests_mock, segment_url(0, 2)) == 0
    assert count_requests(requests_mock, segment_url(1, 2)) == 1


def test_restart_on_expiry_unlimited(session, requests_mock: rm.Mocker, resolver: Mock) -> None:
    """Test every segment expiring once never turns into a failure."""
    for token in range(1, 4):
        register_token(requests_mock, token)
    requests_mock.get(segment_url(1, 1), status_code=403)
    requests_mock.get(segment_url(2, 2), status_code=403)
    decoder = Decoder()
    track = HLSTrack(session, resolver, decoder)

    track.play()

    assert decoder.output == SEGMENTS
    assert track.restarts == 2
    assert track.state is TrackState.DONE


def test_forbidden_playlist(session, requests_mock: rm.Mocker, resolver: Mock) -> None:
    """Test a playlist which stays forbidden fails the track instead of restarting it."""
    requests_mock.get(playlist_url(1), status_code=403)
    register_token(requests_mock, 2)
    decoder = Decoder()
    track = RecordingTrack(session, resolver, decoder)

    with pytest.raises(PlaybackFailure, match="Playlist fetch failed: 403"):
        track.play()

    assert track.states == [TrackState.RESOLVING, TrackState.FAILED]
    assert track.restarts == 0
    assert resolver.call_count == 1
    assert decoder.calls == 0
    assert count_requests(requests_mock, playlist_url(2)) == 0


def test_seek(session, requests_mock: rm.Mocker, resolver: Mock) -> None:
    """Test a seek during playback restarts at the segment covering the target."""
    register_token(requests_mock, 1)
    register_token(requests_mock, 2)
    track: HLSTrack

    def on_chunk(count: int) -> None:
        if count == 1:
            track.seek(20000)

    decoder = Decoder(on_chunk)
    track = RecordingTrack(session, resolver, decoder)

    track.play()

    assert decoder.output == [SEGMENTS[0], SEGMENTS[2]]
    assert decoder.calls == 2
    assert TrackState.RESTARTING in track.states
    assert track.restarts == 1
    assert count_requests(requests_mock, segment_url(0, 2)) == 0
    assert count_requests(requests_mock, segment_url(1, 2)) == 0
    assert track.position == 30000


def test_seek_before_play(session, requests_mock: rm.Mocker, resolver: Mock) -> None:
    """Test a seek requested before the first stream is opened only causes a restart."""
    register_token(requests_mock, 1)
    register_token(requests_mock, 2)
    decoder = Decoder()
    track = HLSTrack(session, resolver, decoder)

    track.seek(10000)
    track.play()

    assert decoder.output == SEGMENTS[1:]
    assert track.restarts == 1


class TestFailure:
    def test_resolver(self, session, resolver: Mock) -> None:
        """Test a failing media-resolution request is fatal."""
        error = PluginError("Stream API error")
        resolver.side_effect = error
        track = RecordingTrack(session, resolver, Decoder())

        with pytest.raises(PlaybackFailure, match="Playback failed: Stream API error") as excinfo:
            track.play()

        assert excinfo.value.__cause__ is error
        assert track.states == [TrackState.RESOLVING, TrackState.FAILED]
        assert track.state is TrackState.FAILED

    def test_segment(self, session, requests_mock: rm.Mocker, resolver: Mock) -> None:
        """Test exhausted retries are fatal."""
        register_token(requests_mock, 1)
        requests_mock.get(segment_url(1, 1), status_code=500)
        decoder = Decoder()
        track = HLSTrack(session, resolver, decoder)

        with pytest.raises(PlaybackFailure) as excinfo:
            track.play()

        assert isinstance(excinfo.value.__cause__, TransientFetchFailure)
        assert decoder.output == SEGMENTS[:1]
        assert track.state is TrackState.FAILED
        assert track.restarts == 0
        assert resolver.call_count == 1

    def test_decoder(self, session, requests_mock: rm.Mocker, resolver: Mock) -> None:
        register_token(requests_mock, 1)

        def decoder(fd: BinaryIO) -> None:
            raise ValueError("invalid ADTS header")

        track = HLSTrack(session, resolver, decoder)

        with pytest.raises(PlaybackFailure, match="invalid ADTS header"):
            track.play()
        assert track.state is TrackState.FAILED
        assert track.stream is None

    def test_decoder_wrapping_expiry(self, session, requests_mock: rm.Mocker, resolver: Mock) -> None:
        """Test an expiry restarts the stream even if the decoder wraps the error."""
        register_token(requests_mock, 1)
        register_token(requests_mock, 2)
        requests_mock.get(segment_url(1, 1), status_code=403)
        output: list[bytes] = []

        def decoder(fd: BinaryIO) -> None:
            try:
                while data := fd.read1(65536):
                    output.append(data)
            except AuthorizationExpired as err:
                raise RuntimeError("decoder aborted") from err

        track = HLSTrack(session, resolver, decoder)
        track.play()

        assert output == SEGMENTS
        assert track.restarts == 1
        assert track.state is TrackState.DONE
