"""Helpers for the tests: request counting, encryption and playlist builders."""

from __future__ import annotations

from typing import TYPE_CHECKING

from Crypto.Cipher import AES


if TYPE_CHECKING:
    import requests_mock as rm


def count_requests(mocker: rm.Mocker, url: str, method: str = "GET") -> int:
    """Number of requests made to a URL."""
    return sum(1 for request in mocker.request_history if request.method == method and request.url == url)


def encrypt(data: bytes, key: bytes, iv: bytes) -> bytes:
    """AES-128-CBC encryption without padding, the data length must be a multiple of 16."""
    return AES.new(key, AES.MODE_CBC, iv).encrypt(data)


def media_playlist(*segments: tuple[float, str], header: str = "", endlist: bool = True) -> str:
    """Build a media playlist from ``(duration, uri)`` pairs."""
    lines = ["#EXTM3U", "#EXT-X-VERSION:3", "#EXT-X-TARGETDURATION:10"]
    if header:
        lines.append(header)
    for duration, uri in segments:
        lines.extend([f"#EXTINF:{duration},", uri])
    if endlist:
        lines.append("#EXT-X-ENDLIST")

    return "\n".join(lines) + "\n"
