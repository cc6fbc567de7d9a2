"""Minimal synchronous hook primitives shared by the build host and the plugin."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Sequence, Tuple


@dataclass(frozen=True)
class Tap:
    name: str
    fn: Callable[..., Any]
    stage: float = 0


class SyncHook:
    """Calls every tap in stage order and discards their results."""

    def __init__(self, args: Sequence[str] = ()) -> None:
        self.args: Tuple[str, ...] = tuple(args)
        self._taps: List[Tap] = []
        self._lock = threading.Lock()

    @property
    def taps(self) -> Tuple[Tap, ...]:
        return tuple(self._taps)

    def tap(self, name: str, fn: Callable[..., Any], *, stage: float = 0) -> None:
        if not name:
            raise ValueError("Hook taps require a non-empty name.")
        with self._lock:
            self._taps.append(Tap(name=name, fn=fn, stage=stage))
            # stable sort keeps registration order within a stage
            self._taps.sort(key=lambda item: item.stage)

    def is_used(self) -> bool:
        return bool(self._taps)

    def _check_arity(self, args: Sequence[object]) -> None:
        if self.args and len(args) != len(self.args):
            expected = ", ".join(self.args)
            raise TypeError(f"Hook expects arguments ({expected}); got {len(args)} value(s).")

    def call(self, *args: object) -> None:
        self._check_arity(args)
        for tap in self.taps:
            tap.fn(*args)


class SyncWaterfallHook(SyncHook):
    """Threads the first argument through every tap.

    A tap returning ``None`` leaves the current value untouched, so taps that
    mutate in place do not need to return anything.
    """

    def __init__(self, args: Sequence[str]) -> None:
        if not args:
            raise ValueError("Waterfall hooks need at least one argument.")
        super().__init__(args)

    def call(self, *args: object) -> Any:  # type: ignore[override]
        self._check_arity(args)
        value, rest = args[0], args[1:]
        for tap in self.taps:
            result = tap.fn(value, *rest)
            if result is not None:
                value = result
        return value
