"""Lazy, single-pass async sequences with filter/map/take/collect.

A LazySequence wraps any async iterator. `map`, `filter` and `take` return
new sequences that pull from the one they decorate only when they are
themselves pulled, so nothing upstream runs until a consumer asks for an
element.

Usage:
    courses = canvas.list_items("accounts/1/courses")
    names = await (
        courses.filter(lambda c: c["workflow_state"] == "available")
        .map(lambda c: c["name"])
        .take(10)
        .collect()
    )
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from typing import Any, Generic, TypeVar

T = TypeVar("T")
V = TypeVar("V")


async def _resolve(value: Any) -> Any:
    """Await callback results that are awaitable, pass others through."""
    if inspect.isawaitable(value):
        return await value
    return value


class LazySequence(AsyncGenerator, Generic[T]):
    """Composable async sequence over an async iterator.

    The sequence is single-pass: once exhausted it stays exhausted, and a
    partially consumed sequence continues where it left off.
    """

    def __init__(self, source: AsyncIterator[T]) -> None:
        self._source = source
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        """True once the sequence has ended, been closed, or failed."""
        return self._exhausted

    # ==================== Composition ====================

    def map(self, transform: Callable[[T], V | Awaitable[V]]) -> LazySequence[V]:
        """New sequence with `transform` applied to every element."""
        return _MappedSequence(self, transform)

    def filter(self, predicate: Callable[[T], bool | Awaitable[bool]]) -> LazySequence[T]:
        """New sequence with only the elements `predicate` accepts."""
        return _FilteredSequence(self, predicate)

    def take(self, n: int) -> LazySequence[T]:
        """New sequence yielding at most `n` elements.

        `take(0)` never pulls from this sequence.
        """
        return _TakeSequence(self, n)

    async def collect(self) -> list[T]:
        """
        Drain the sequence into a list.

        The sequence is exhausted afterwards; elements already pulled are
        not included.
        """
        return [v async for v in self]

    # ==================== Async generator protocol ====================

    async def _pull(self) -> T:
        """Produce the next element or raise StopAsyncIteration."""
        return await self._source.__anext__()

    async def asend(self, value: None) -> T:
        if self._exhausted:
            raise StopAsyncIteration
        try:
            return await self._pull()
        except BaseException:
            # Ended, failed, or cancelled - a single-pass sequence does not resume
            self._exhausted = True
            raise

    async def athrow(self, typ: Any, val: Any = None, tb: Any = None) -> T:
        """Raise an exception at the source, as `AsyncGenerator.athrow` does.

        If the source handles it and yields again, that element is returned.
        """
        if val is None:
            val = typ() if isinstance(typ, type) else typ
        if tb is not None:
            val = val.with_traceback(tb)

        upstream_athrow = getattr(self._source, "athrow", None)
        if self._exhausted or upstream_athrow is None:
            self._exhausted = True
            raise val

        try:
            return await self._after_throw(await upstream_athrow(val))
        except BaseException:
            self._exhausted = True
            raise

    async def _after_throw(self, value: Any) -> T:
        """Process an element produced by the source after athrow."""
        return value

    async def aclose(self) -> None:
        """Stop early and close the source."""
        self._exhausted = True
        upstream_aclose = getattr(self._source, "aclose", None)
        if upstream_aclose is not None:
            await upstream_aclose()


class _MappedSequence(LazySequence[V], Generic[T, V]):
    def __init__(self, upstream: LazySequence[T], transform: Callable[[T], Any]) -> None:
        super().__init__(upstream)  # type: ignore[arg-type]
        self._transform = transform

    async def _pull(self) -> V:
        return await _resolve(self._transform(await self._source.__anext__()))

    async def _after_throw(self, value: Any) -> V:
        return await _resolve(self._transform(value))


class _FilteredSequence(LazySequence[T]):
    def __init__(self, upstream: LazySequence[T], predicate: Callable[[T], Any]) -> None:
        super().__init__(upstream)
        self._predicate = predicate

    async def _pull(self) -> T:
        while True:
            value = await self._source.__anext__()
            if await _resolve(self._predicate(value)):
                return value

    async def _after_throw(self, value: Any) -> T:
        if await _resolve(self._predicate(value)):
            return value
        return await self._pull()


class _TakeSequence(LazySequence[T]):
    def __init__(self, upstream: LazySequence[T], n: int) -> None:
        super().__init__(upstream)
        self._remaining = n

    async def _pull(self) -> T:
        if self._remaining <= 0:
            raise StopAsyncIteration
        value = await self._source.__anext__()
        self._remaining -= 1
        return value

    async def _after_throw(self, value: Any) -> T:
        if self._remaining <= 0:
            raise StopAsyncIteration
        self._remaining -= 1
        return value
