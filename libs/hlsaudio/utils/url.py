from __future__ import annotations

import re
from urllib.parse import urljoin, urlparse, urlunparse


_re_uri_implicit_scheme = re.compile(r"^[a-z0-9][a-z0-9.+-]*://", re.IGNORECASE)


def update_scheme(current: str, target: str, force: bool = True) -> str:
    """
    Take the scheme from the current URL and apply it to the
    target URL if it's missing.

    :param current: current URL
    :param target: target URL
    :param force: always apply the current scheme to the target, even if a target scheme exists
    :return: target URL with the current URL's scheme
    """
    target_p = urlparse(target)

    if (
        # target URLs with implicit scheme and netloc including a port: ("http://", "foo.bar:1234") -> "http://foo.bar:1234"
        # urlparse("127.0.0.1:1234") == ParseResult(scheme='127.0.0.1', netloc='', path='1234', ...)
        not _re_uri_implicit_scheme.search(target) and not target.startswith("//")
        # target URLs without scheme and netloc: ("http://", "foo.bar/foo") -> "http://foo.bar/foo"
        or not target_p.scheme and not target_p.netloc
    ):
        return f"{urlparse(current).scheme}://{urlunparse(target_p)}"

    # target URLs without scheme but with netloc: ("http://", "//foo.bar/foo") -> "http://foo.bar/foo"
    if not target_p.scheme and target_p.netloc:
        return f"{urlparse(current).scheme}:{target}"

    # target URLs with scheme
    # override the target scheme
    if force:
        return target_p._replace(scheme=urlparse(current).scheme).geturl()

    # keep the target scheme
    return target


def absolute_url(baseurl: str, url: str) -> str:
    """
    Resolve a playlist reference against the URL the playlist was fetched from.

    Absolute ``http(s)`` URLs are returned unchanged, everything else follows RFC 3986 reference resolution.
    """
    if url.startswith(("http://", "https://")):
        return url

    return urljoin(baseurl, url)
