from __future__ import annotations

import time
from typing import Any

import requests

from hlsaudio.exceptions import PluginError
from hlsaudio.utils import parse_json


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/134.0.0.0 Safari/537.36"
)


class HTTPSession(requests.Session):
    """
    A :class:`requests.Session` with a default timeout, optional transport retries
    and a caller-chosen exception type for failed requests.
    """

    def __init__(self):
        super().__init__()

        self.headers["User-Agent"] = DEFAULT_USER_AGENT
        self.timeout = 20.0

    @staticmethod
    def json(res: requests.Response, *args, **kwargs) -> Any:
        """Parses JSON from a response."""
        # if an encoding is already set then use the provided encoding
        if res.encoding is None:
            res.encoding = "utf-8"

        return parse_json(res.text, *args, **kwargs)

    def request(self, method, url, *args, **kwargs):
        """
        Same as :meth:`requests.Session.request`, with these extra keyword arguments:

        - ``exception``: exception class raised when the request fails (default: :class:`PluginError`),
          the original exception is attached as ``err``
        - ``raise_for_status``: raise on 4xx/5xx responses (default: ``True``)
        - ``acceptable_status``: status codes which never raise
        - ``retries``, ``retry_backoff``, ``retry_max_backoff``: transport level retries
        """
        acceptable_status = kwargs.pop("acceptable_status", [])
        exception = kwargs.pop("exception", PluginError)
        headers = kwargs.pop("headers", {})
        params = kwargs.pop("params", {})
        proxies = kwargs.pop("proxies", self.proxies)
        raise_for_status = kwargs.pop("raise_for_status", True)
        timeout = kwargs.pop("timeout", self.timeout)
        total_retries = kwargs.pop("retries", 0)
        retry_backoff = kwargs.pop("retry_backoff", 0.3)
        retry_max_backoff = kwargs.pop("retry_max_backoff", 10.0)
        retries = 0

        while True:
            try:
                res = super().request(
                    method,
                    url,
                    *args,
                    headers=headers,
                    params=params,
                    timeout=timeout,
                    proxies=proxies,
                    **kwargs,
                )
                if raise_for_status and res.status_code not in acceptable_status:
                    res.raise_for_status()
                break
            except KeyboardInterrupt:
                raise
            except Exception as rerr:
                if retries >= total_retries:
                    err = exception(f"Unable to open URL: {url} ({rerr})")
                    err.err = rerr
                    raise err from rerr
                retries += 1
                # back off retrying, but only to a maximum sleep time
                delay = min(retry_max_backoff, retry_backoff * (2 ** (retries - 1)))
                time.sleep(delay)

        return res


__all__ = ["DEFAULT_USER_AGENT", "HTTPSession"]
