"""Observable form state.

``FormState`` is a mutable mapping that notifies its listeners once per
mutation. Item assignment, deletion, ``update`` and ``assign`` each count as a
single mutation. Nested values (lists, dicts) can be changed in place; call
``touch()`` afterwards so the change is observed.
"""

import copy
from collections.abc import MutableMapping
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping

ChangeListener = Callable[[], None]


class FormState(MutableMapping):
    def __init__(self, initial: Mapping[str, Any]):
        self._data: dict[str, Any] = copy.deepcopy(dict(initial))
        self._listeners: list[ChangeListener] = []
        self._silenced = 0

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._notify()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._notify()

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"FormState({self._data!r})"

    def update(self, other: Any = (), /, **kwargs: Any) -> None:
        """Sets several fields as one mutation."""
        self._data.update(other, **kwargs)
        self._notify()

    def assign(self, values: Mapping[str, Any]) -> None:
        """Alias of ``update`` for restoring a snapshot over the live state."""
        self.update(values)

    def touch(self) -> None:
        """Signals an in-place change of a nested value."""
        self._notify()

    def snapshot(self) -> dict[str, Any]:
        """A deep copy of the current values."""
        return copy.deepcopy(self._data)

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @contextmanager
    def silenced(self) -> Iterator[None]:
        """Suppresses notifications for mutations made inside the block."""
        self._silenced += 1
        try:
            yield
        finally:
            self._silenced -= 1

    def _notify(self) -> None:
        if self._silenced:
            return
        for listener in list(self._listeners):
            listener()
