from __future__ import annotations

import contextlib
import logging
import time
from http.client import IncompleteRead
from typing import TYPE_CHECKING

from requests.exceptions import ChunkedEncodingError, ConnectionError, ContentDecodingError
from urllib3.exceptions import ProtocolError

from hlsaudio.exceptions import AuthorizationExpired, DecryptionFailure, TransientFetchFailure
from hlsaudio.utils import LRUCache
from hlsaudio.utils.crypto import AES, decrypt_cbc, num_to_iv


if TYPE_CHECKING:
    from collections.abc import Callable

    from requests import Response

    from hlsaudio.session import HLSAudioSession
    from hlsaudio.stream.hls.segment import KeyInfo, MapInfo, Segment


log = logging.getLogger(".".join(__name__.split(".")[:-1]))


def _sleep(seconds: float) -> bool:
    time.sleep(seconds)
    return True


class SegmentFetcher:
    """
    Downloads and decrypts keys, initialization sections and media segments.

    One instance belongs to exactly one stream attempt, so its key cache never outlives
    the signed URLs the keys were fetched with.
    """

    # Errors raised while reading the response body
    _partial_exc_classes = (
        ChunkedEncodingError,
        ContentDecodingError,
        ConnectionError,
        IncompleteRead,
        ProtocolError,
    )

    def __init__(self, session: HLSAudioSession, wait: Callable[[float], bool] | None = None):
        """
        :param session: Session providing the HTTP client and options
        :param wait: Called with the backoff delay between attempts. Returning ``False`` aborts the retries.
        """
        options = session.options

        self.session = session
        self.attempts: int = max(1, int(options.get("hls-segment-attempts")))
        self.backoff: float = float(options.get("hls-segment-backoff"))
        self.chunk_size: int = options.get("chunk-size")
        self.client_info: str = options.get("client-info")
        self.key_cache: LRUCache[str, bytes] = LRUCache(int(options.get("hls-key-cache-size")))
        self.wait = wait or _sleep

    def _fetch(self, url: str, context: str) -> bytes:
        res: Response = self.session.http.get(
            url,
            stream=True,
            raise_for_status=False,
            exception=TransientFetchFailure,
        )
        try:
            if res.status_code == 403:
                raise AuthorizationExpired(f"{context.capitalize()} request failed: token expired")
            if not 200 <= res.status_code < 300:
                raise TransientFetchFailure(
                    f"{context.capitalize()} request failed: {res.status_code}",
                    status_code=res.status_code,
                )
            try:
                return b"".join(res.iter_content(self.chunk_size))
            except self._partial_exc_classes as err:
                raise TransientFetchFailure(f"{context.capitalize()} read failed: {err}") from err
        finally:
            with contextlib.suppress(Exception):
                res.close()

    def fetch_key(self, key: KeyInfo | None) -> bytes | None:
        if key is None or not key.encrypted:
            return None

        if not key.uri:
            raise DecryptionFailure("Missing URI for decryption key")

        key_data = self.key_cache.get(key.uri)
        if key_data is not None:
            return key_data

        key_data = self._fetch(key.uri, "key")
        if not key_data:
            raise TransientFetchFailure("Empty key response")

        self.key_cache.set(key.uri, key_data)
        return key_data

    def decrypt(self, data: bytes, key: KeyInfo, num: int) -> bytes:
        if key.method != "AES-128":
            raise DecryptionFailure(f"Unable to decrypt cipher {key.method}")

        key_data = self.fetch_key(key)
        iv = key.iv or num_to_iv(num)
        try:
            return decrypt_cbc(data, key_data, iv)
        except ValueError as err:
            raise DecryptionFailure(f"Decryption failed: {err}") from err

    def fetch_map(self, segment_map: MapInfo | None, key: KeyInfo | None = None, num: int = 0) -> bytes | None:
        """
        Fetch an initialization section.

        It is only decrypted when its length is a multiple of the cipher block size,
        some encoders ship plaintext init data next to encrypted segments.
        """
        if segment_map is None or not segment_map.uri:
            return None

        data = self._fetch(segment_map.uri, "map")
        if key is not None and key.encrypted and len(data) % AES.block_size == 0:
            data = self.decrypt(data, key, num)

        return data

    def fetch_segment(self, segment: Segment) -> bytes:
        """
        Fetch and decrypt a media segment, retrying transient failures with exponential backoff.

        :raises AuthorizationExpired: immediately, it is never retried here
        :raises TransientFetchFailure: once all attempts failed
        :raises DecryptionFailure: immediately
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                data = self._fetch(segment.uri, "segment")
                if segment.key is not None and segment.key.encrypted:
                    data = self.decrypt(data, segment.key, segment.num)
                return data
            except AuthorizationExpired:
                log.warning(f"{self.client_info} Segment {segment.num} returned 403 - token expired")
                raise
            except TransientFetchFailure as err:
                if attempt >= self.attempts:
                    log.error(f"{self.client_info} Segment {segment.num} failed after {attempt} attempts: {err}")
                    raise
                delay = self.backoff * 2 ** attempt
                log.warning(f"{self.client_info} Segment {segment.num} retry {attempt}: {err}")
                if not self.wait(delay):
                    raise TransientFetchFailure("Interrupted during retry") from err
