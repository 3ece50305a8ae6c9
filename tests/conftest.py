"""Shared fixtures."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from hlsaudio.session import HLSAudioSession


@pytest.fixture
def session() -> Iterator[HLSAudioSession]:
    """Session with short timeouts and without retry backoff."""
    session = HLSAudioSession({
        "hls-segment-backoff": 0.0,
        "hls-read-timeout": 1.0,
        "hls-worker-throttle": 0.01,
    })
    yield session
    session.http.close()
