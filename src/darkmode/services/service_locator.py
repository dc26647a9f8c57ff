"""Per-document registry of shared objects.

A ``Document`` owns exactly one ``ServiceLocator`` (``document.services``).
The engine registers itself there under ``darkmode_engine`` when attached, so a
second ``attach_engine`` call on the same document finds the running instance
instead of building another one.

All access happens on the document's scheduler, so the registry is a plain
dict with no locking.

    document.services.register("darkmode_engine", engine, origin="attach_engine")
    engine = document.services.try_get("darkmode_engine")

Tests swap entries for the duration of a block:

    with document.services.override_context(darkmode_engine=fake):
        ...
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

T = TypeVar("T")

__all__ = ["ServiceLocator", "ServiceAlreadyRegisteredError", "ServiceNotFoundError"]

_MISSING = object()


class ServiceAlreadyRegisteredError(RuntimeError):
    """A key is bound already and the caller did not ask to replace it."""


class ServiceNotFoundError(KeyError):
    """Lookup of a key nothing was bound to."""


@dataclass(frozen=True)
class _Binding:
    value: Any
    origin: Optional[str] = None


class ServiceLocator:
    def __init__(self) -> None:
        self._bindings: Dict[str, _Binding] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._bindings

    def register(
        self, key: str, value: Any, *, allow_override: bool = False, origin: str | None = None
    ) -> None:
        """Bind ``value`` to ``key``.

        A second binding for the same key is refused unless ``allow_override``
        is set; the error names whoever bound it first when that is known.
        """
        current = self._bindings.get(key)
        if current is not None and not allow_override:
            owner = f" by {current.origin}" if current.origin else ""
            raise ServiceAlreadyRegisteredError(f"'{key}' is already bound{owner}")
        self._bindings[key] = _Binding(value, origin)

    def get(self, key: str) -> Any:
        try:
            return self._bindings[key].value
        except KeyError:
            raise ServiceNotFoundError(key) from None

    def get_typed(self, key: str, expected_type: Type[T]) -> T:
        value = self.get(key)
        if isinstance(value, expected_type):
            return value
        raise TypeError(
            f"'{key}' holds {type(value).__name__}, wanted {expected_type.__name__}"
        )

    def try_get(self, key: str, default: Any = None) -> Any:
        binding = self._bindings.get(key)
        return default if binding is None else binding.value

    def unregister(self, key: str) -> None:
        # unknown keys are ignored; detach paths call this unconditionally
        self._bindings.pop(key, None)

    def list_keys(self) -> List[str]:
        return list(self._bindings)

    @contextmanager
    def override_context(self, **replacements: Any) -> Iterator["ServiceLocator"]:
        """Rebind keys inside a ``with`` block and put the old bindings back after.

        Keys that were unbound before the block are removed again on exit.
        """
        saved = {key: self._bindings.get(key, _MISSING) for key in replacements}
        for key, value in replacements.items():
            self._bindings[key] = _Binding(value, "override")
        try:
            yield self
        finally:
            for key, prior in saved.items():
                if prior is _MISSING:
                    self._bindings.pop(key, None)
                else:
                    self._bindings[key] = prior
