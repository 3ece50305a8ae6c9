from __future__ import annotations

from socket import AF_INET, AF_INET6
from typing import TYPE_CHECKING, Any, ClassVar

import urllib3.util.connection as urllib3_util_connection
from requests.adapters import HTTPAdapter

from hlsaudio.options import Options
from hlsaudio.utils.url import update_scheme


if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

    from hlsaudio.session import HLSAudioSession


_original_allowed_gai_family = urllib3_util_connection.allowed_gai_family  # type: ignore[attr-defined]


class HLSAudioOptions(Options):
    """
    The session's options.

    HLS stream options:

    - ``hls-segment-queue-size``: capacity of the queue between the download worker and the reader
    - ``hls-read-timeout``: seconds the reader waits for the next queued segment
    - ``hls-segment-attempts``: total number of attempts per segment, including the first one
    - ``hls-segment-backoff``: base backoff in seconds, the n-th retry waits ``backoff * 2 ** n``
    - ``hls-key-cache-size``: number of decryption keys kept per stream
    - ``hls-worker-throttle``: seconds between queue checks while the queue is full
    - ``decoder-buffer-size``: size of the buffered reader handed to the decoder

    Numeric options are validated and converted when set.

    HTTP options (``http-*``, ``interface``, ``ipv4``, ``ipv6``) are mapped onto the session's HTTP client.
    """

    def __init__(self, session: HLSAudioSession) -> None:
        super().__init__({
            "interface": None,
            "ipv4": False,
            "ipv6": False,
            "hls-segment-queue-size": 5,
            "hls-read-timeout": 5.0,
            "hls-segment-attempts": 3,
            "hls-segment-backoff": 0.5,
            "hls-key-cache-size": 20,
            "hls-worker-throttle": 0.1,
            "decoder-buffer-size": 65536,
            "chunk-size": 8192,
            "client-info": "",
        })
        self.session = session

    # ---- utils

    @staticmethod
    def _parse_key_equals_value_string(delimiter: str, value: str) -> Iterator[tuple[str, str]]:
        for keyval in value.split(delimiter):
            try:
                key, val = keyval.split("=", 1)
                yield key.strip(), val.strip()
            except ValueError:
                continue

    # ---- getters

    def _get_http_proxy(self, key):
        return self.session.http.proxies.get("http")

    def _get_http_attr(self, key):
        return getattr(self.session.http, self._OPTIONS_HTTP_ATTRS[key])

    # ---- setters

    def _set_interface(self, key, value):
        for adapter in self.session.http.adapters.values():
            if not isinstance(adapter, HTTPAdapter):
                continue
            if not value:
                adapter.poolmanager.connection_pool_kw.pop("source_address", None)
            else:
                # https://docs.python.org/3/library/socket.html#socket.create_connection
                adapter.poolmanager.connection_pool_kw.update(source_address=(value, 0))
        self.set_explicit(key, None if not value else value)

    def _set_ipv4_ipv6(self, key, value):
        self.set_explicit(key, value)
        if not value:
            urllib3_util_connection.allowed_gai_family = _original_allowed_gai_family  # type: ignore[attr-defined]
        elif key == "ipv4":
            self.set_explicit("ipv6", False)
            urllib3_util_connection.allowed_gai_family = lambda: AF_INET  # type: ignore[attr-defined]
        else:
            self.set_explicit("ipv4", False)
            urllib3_util_connection.allowed_gai_family = lambda: AF_INET6  # type: ignore[attr-defined]

    def _set_http_proxy(self, key, value):
        self.session.http.proxies["http"] \
            = self.session.http.proxies["https"] \
            = update_scheme("https://", value, force=False)  # fmt: skip

    def _set_http_attr(self, key, value):
        setattr(self.session.http, self._OPTIONS_HTTP_ATTRS[key], value)

    @staticmethod
    def _factory_set_http_attr_key_equals_value(delimiter: str) -> Callable[[HLSAudioOptions, str, Any], None]:
        def inner(self: HLSAudioOptions, key: str, value: Any) -> None:
            getattr(self.session.http, self._OPTIONS_HTTP_ATTRS[key]).update(
                value if isinstance(value, dict) else dict(self._parse_key_equals_value_string(delimiter, value)),
            )

        return inner

    @staticmethod
    def _factory_set_number(cast: Callable[[Any], float], minimum: float) -> Callable[[HLSAudioOptions, str, Any], None]:
        def inner(self: HLSAudioOptions, key: str, value: Any) -> None:
            try:
                number = cast(value)
            except (TypeError, ValueError) as err:
                raise ValueError(f"Invalid value for the {key} option: {value!r}") from err
            if number < minimum:
                raise ValueError(f"The {key} option must be at least {minimum}: {value!r}")
            self.set_explicit(key, number)

        return inner

    # ----

    _OPTIONS_HTTP_ATTRS: ClassVar[Mapping[str, str]] = {
        "http-cookies": "cookies",
        "http-headers": "headers",
        "http-query-params": "params",
        "http-ssl-verify": "verify",
        "http-trust-env": "trust_env",
        "http-timeout": "timeout",
    }

    _MAP_GETTERS: ClassVar[Mapping[str, Callable[[HLSAudioOptions, str], Any]]] = {
        "http-proxy": _get_http_proxy,
        "http-cookies": _get_http_attr,
        "http-headers": _get_http_attr,
        "http-query-params": _get_http_attr,
        "http-ssl-verify": _get_http_attr,
        "http-trust-env": _get_http_attr,
        "http-timeout": _get_http_attr,
    }

    _MAP_SETTERS: ClassVar[Mapping[str, Callable[[HLSAudioOptions, str, Any], None]]] = {
        "hls-segment-queue-size": _factory_set_number(int, 1),
        "hls-read-timeout": _factory_set_number(float, 0),
        "hls-segment-attempts": _factory_set_number(int, 1),
        "hls-segment-backoff": _factory_set_number(float, 0),
        "hls-key-cache-size": _factory_set_number(int, 1),
        "hls-worker-throttle": _factory_set_number(float, 0),
        "decoder-buffer-size": _factory_set_number(int, 1),
        "chunk-size": _factory_set_number(int, 1),
        "interface": _set_interface,
        "ipv4": _set_ipv4_ipv6,
        "ipv6": _set_ipv4_ipv6,
        "http-proxy": _set_http_proxy,
        "http-cookies": _factory_set_http_attr_key_equals_value(";"),
        "http-headers": _factory_set_http_attr_key_equals_value(";"),
        "http-query-params": _factory_set_http_attr_key_equals_value("&"),
        "http-ssl-verify": _set_http_attr,
        "http-trust-env": _set_http_attr,
        "http-timeout": _set_http_attr,
    }
