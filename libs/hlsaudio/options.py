from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar


if TYPE_CHECKING:
    from collections.abc import Callable, Mapping


def _normalise_dict_key(key: str) -> str:
    return key.replace("_", "-")


def _normalise_dict(src: Mapping[str, Any]) -> dict[str, Any]:
    return {_normalise_dict_key(key): value for key, value in src.items()}


class Options:
    """
    Options for the session and the HLS streams.

    Keys are normalised, so ``segment_queue_size`` and ``segment-queue-size`` are the same option.
    Subclasses can route individual keys through custom getters and setters.
    """

    _MAP_GETTERS: ClassVar[Mapping[str, Callable[[Any, str], Any]]] = {}
    _MAP_SETTERS: ClassVar[Mapping[str, Callable[[Any, str, Any], None]]] = {}

    def __init__(self, defaults: Mapping[str, Any] | None = None):
        if not defaults:
            defaults = {}

        self.defaults = _normalise_dict(defaults)
        self.options = self.defaults.copy()

    def clear(self) -> None:
        """Restore initial options"""
        self.options = self.defaults.copy()

    def get(self, key: str) -> Any:
        """Get the stored value of a specific key, using a custom getter if one exists"""
        normalized = _normalise_dict_key(key)
        method = self._MAP_GETTERS.get(normalized)
        if method is not None:
            return method(self, normalized)

        return self.get_explicit(normalized)

    def get_explicit(self, key: str) -> Any:
        """Get the stored value of a specific key, ignoring any custom getter"""
        return self.options.get(_normalise_dict_key(key))

    def set(self, key: str, value: Any) -> None:
        """Set the value for a specific key, using a custom setter if one exists"""
        normalized = _normalise_dict_key(key)
        method = self._MAP_SETTERS.get(normalized)
        if method is not None:
            method(self, normalized, value)
        else:
            self.set_explicit(normalized, value)

    def set_explicit(self, key: str, value: Any) -> None:
        """Set the value for a specific key, ignoring any custom setter"""
        self.options[_normalise_dict_key(key)] = value

    def update(self, options: Mapping[str, Any]) -> None:
        """Merge options"""
        for key, value in _normalise_dict(options).items():
            self.set(key, value)
