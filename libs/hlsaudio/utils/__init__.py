import json
from collections import OrderedDict
from typing import Generic, Optional, OrderedDict as TOrderedDict, TypeVar

from hlsaudio.exceptions import PluginError
from hlsaudio.utils.url import absolute_url, update_scheme


def parse_json(data, name="JSON", exception=PluginError):
    """Wrapper around json.loads.

    Wraps errors in custom exception with a snippet of the data in the message.
    """
    try:
        return json.loads(data)
    except ValueError as err:
        snippet = repr(data)
        if len(snippet) > 35:
            snippet = f"{snippet[:35]} ..."

        raise exception(f"Unable to parse {name}: {err} ({snippet})") from err


TCacheKey = TypeVar("TCacheKey")
TCacheValue = TypeVar("TCacheValue")


class LRUCache(Generic[TCacheKey, TCacheValue]):
    def __init__(self, num: int):
        self.cache: TOrderedDict[TCacheKey, TCacheValue] = OrderedDict()
        self.num = max(1, num)

    def __len__(self) -> int:
        return len(self.cache)

    def __contains__(self, key: TCacheKey) -> bool:
        return key in self.cache

    def get(self, key: TCacheKey) -> Optional[TCacheValue]:
        if key not in self.cache:
            return None
        self.cache.move_to_end(key)
        return self.cache[key]

    def set(self, key: TCacheKey, value: TCacheValue) -> None:
        self.cache[key] = value
        self.cache.move_to_end(key)
        if len(self.cache) > self.num:
            self.cache.popitem(last=False)

    def clear(self) -> None:
        self.cache.clear()


__all__ = ["absolute_url", "parse_json", "update_scheme", "LRUCache"]
