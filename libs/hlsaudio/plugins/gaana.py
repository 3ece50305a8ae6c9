"""
Gaana track resolution: the stream API returns an obfuscated, AES encrypted path
which has to be turned into a signed HLS playlist URL before every stream attempt.
"""

from __future__ import annotations

import logging
import re
from base64 import b64decode
from binascii import Error as BinasciiError
from typing import TYPE_CHECKING, BinaryIO

from hlsaudio.exceptions import PluginError
from hlsaudio.session.http import DEFAULT_USER_AGENT
from hlsaudio.stream.hls.track import HLSTrack
from hlsaudio.utils.crypto import decrypt_cbc


if TYPE_CHECKING:
    from collections.abc import Callable

    from hlsaudio.session import HLSAudioSession


log = logging.getLogger(__name__)


class GaanaAPI:
    STREAM_API_URL = "https://gaana.com/api/stream-url"
    HLS_BASE_URL = "https://vodhlsgaana-ebw.akamaized.net/"
    ORIGIN = "https://gaana.com"

    _CRYPTO_KEY = b"gy1t#b@jl(b$wtme"
    _CRYPTO_IV = b"xC4dmVJAq14BfntX"
    _PATH_MARKER = "hls/"
    _re_non_base64 = re.compile(r"[^A-Za-z0-9+/]")

    def __init__(self, session: HLSAudioSession, quality: str = "high"):
        self.session = session
        self.quality = quality

    def get_hls_url(self, track_id: str) -> str:
        """
        Ask the stream API for a fresh HLS URL of a track.

        :raises PluginError: on request failures, API errors or undecryptable stream paths
        """
        res = self.session.http.post(
            self.STREAM_API_URL,
            data={
                "quality": self.quality,
                "track_id": track_id,
                "stream_format": "mp4",
            },
            headers={
                "User-Agent": DEFAULT_USER_AGENT,
                "Accept": "application/json, text/plain, */*",
                "Origin": self.ORIGIN,
                "Referer": f"{self.ORIGIN}/",
            },
        )
        data = self.session.http.json(res)
        if not isinstance(data, dict):
            raise PluginError("Unexpected stream API response")

        status = data.get("api_status")
        if status != "success":
            raise PluginError(f"Stream API error for track {track_id}: {status}")

        stream_path = (data.get("data") or {}).get("stream_path")
        if not stream_path:
            raise PluginError(f"No stream path for track {track_id}")

        hls_url = self.decrypt_stream_path(stream_path)
        log.debug(f"Found stream: {hls_url}")

        return hls_url

    @classmethod
    def decrypt_stream_path(cls, data: str) -> str:
        """
        The first character is a digit ``n``, the ciphertext starts after ``n + 16`` characters.
        The payload is base64 with garbage characters mixed in.
        """
        if not data or not "0" <= data[0] <= "9":
            raise PluginError("Invalid stream path")

        offset = int(data[0])
        payload = cls._re_non_base64.sub("", data[offset + 16:])
        payload += "=" * (-len(payload) % 4)

        try:
            decrypted = decrypt_cbc(b64decode(payload), cls._CRYPTO_KEY, cls._CRYPTO_IV)
        except (BinasciiError, ValueError) as err:
            raise PluginError(f"Unable to decrypt stream path: {err}") from err

        text = bytes(c for c in decrypted if 32 <= c <= 126).decode("ascii").strip()
        idx = text.find(cls._PATH_MARKER)
        if idx < 0:
            raise PluginError("Unable to decrypt stream path: no HLS path found")

        return f"{cls.HLS_BASE_URL}{text[idx:]}"


class GaanaTrack(HLSTrack):
    def __init__(
        self,
        session: HLSAudioSession,
        track_id: str,
        decoder: Callable[[BinaryIO], None],
        quality: str = "high",
    ):
        self.track_id = track_id
        self.api = GaanaAPI(session, quality=quality)
        super().__init__(session, self._resolve, decoder, name=f"gaana-{track_id}")

    def _resolve(self) -> str:
        log.debug(f"Resolving HLS URL of track {self.track_id}")
        return self.api.get_hls_url(self.track_id)


__all__ = ["GaanaAPI", "GaanaTrack"]
