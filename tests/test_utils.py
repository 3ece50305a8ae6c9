"""Tests for the JSON, cache and URL helpers."""

from __future__ import annotations

import pytest

from hlsaudio.exceptions import PluginError, StreamError
from hlsaudio.utils import LRUCache, parse_json
from hlsaudio.utils.url import absolute_url, update_scheme


class TestParseJSON:
    def test_valid(self) -> None:
        assert parse_json('{"a": 1}') == {"a": 1}

    def test_invalid(self) -> None:
        with pytest.raises(PluginError, match=r"Unable to parse JSON: .+ \('<html>'\)"):
            parse_json("<html>")

    def test_snippet(self) -> None:
        with pytest.raises(StreamError, match=r"Unable to parse playlist: .+ \('x{34} \.\.\.\)"):
            parse_json("x" * 100, name="playlist", exception=StreamError)


class TestLRUCache:
    def test_bound(self) -> None:
        cache: LRUCache[str, int] = LRUCache(2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert len(cache) == 2
        assert "a" not in cache
        assert cache.get("a") is None
        assert cache.get("c") == 3

    def test_recently_used(self) -> None:
        cache: LRUCache[str, int] = LRUCache(2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert "a" in cache
        assert "b" not in cache

    def test_minimum_size(self) -> None:
        cache: LRUCache[str, int] = LRUCache(0)
        cache.set("a", 1)

        assert cache.get("a") == 1

    def test_clear(self) -> None:
        cache: LRUCache[str, int] = LRUCache(2)
        cache.set("a", 1)
        cache.clear()

        assert len(cache) == 0


@pytest.mark.parametrize(
    ("baseurl", "url", "expected"),
    [
        ("https://host/a/b.m3u8", "https://other/c.ts", "https://other/c.ts"),
        ("https://host/a/b.m3u8", "http://other/c.ts", "http://other/c.ts"),
        ("https://host/a/b.m3u8?token=1", "c.ts", "https://host/a/c.ts"),
        ("https://host/a/b.m3u8", "../c.ts", "https://host/c.ts"),
        ("https://host/a/b.m3u8", "/c.ts", "https://host/c.ts"),
        ("https://host/a/b.m3u8", "//cdn/c.ts", "https://cdn/c.ts"),
    ],
)
def test_absolute_url(baseurl: str, url: str, expected: str) -> None:
    assert absolute_url(baseurl, url) == expected


@pytest.mark.parametrize(
    ("current", "target", "force", "expected"),
    [
        ("https://", "//host/path", True, "https://host/path"),
        ("https://", "host/path", True, "https://host/path"),
        ("https://", "http://host/path", True, "https://host/path"),
        ("https://", "http://host/path", False, "http://host/path"),
        ("http://", "127.0.0.1:1234/path", False, "http://127.0.0.1:1234/path"),
    ],
)
def test_update_scheme(current: str, target: str, force: bool, expected: str) -> None:
    assert update_scheme(current, target, force=force) == expected
