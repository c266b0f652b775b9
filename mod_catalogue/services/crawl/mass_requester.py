"""Bounded-concurrency, retrying, chunked execution of many async calls.

The requester splits a list of arguments into chunks of ``chunk_size``. Calls
within a chunk run concurrently, chunks run one after another with
``chunk_delay`` seconds between them. Every call is retried up to
``max_attempts`` times, waiting ``retry_cooldown * attempt`` seconds between
attempts; a call that never succeeds resolves to ``fail_value`` and is
reported as a :class:`FetchError`. Results inside a chunk keep the order of
the arguments.

Usage::

    requester = MassRequester(chunk_size=300, max_attempts=3, retry_cooldown=1.0, chunk_delay=0.1)
    stream = requester.stream(fetch_page, range(1, 11), key_fn=str, fail_value=[])
    async for chunk in stream:
        ...
    MassRequester.log_errors(stream.errors, "pages")
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

import httpx

logger = logging.getLogger(__name__)

A = TypeVar("A")
T = TypeVar("T")


@dataclass
class FetchError:
    key: str
    error: BaseException

    @property
    def message(self) -> str:
        err = self.error
        if isinstance(err, httpx.HTTPStatusError):
            return f"{err.response.status_code} ({err.response.reason_phrase})"
        if isinstance(err, httpx.HTTPError):
            return type(err).__name__
        return f"{type(err).__name__}: {err}" if str(err) else type(err).__name__


@dataclass
class _Completion:
    errors: List[FetchError]
    # set when the producer itself died; re-raised to the consumer
    failure: Optional[BaseException] = None


class ChunkStream(Generic[T]):
    """Async iterator over chunk results, fed by a producer task.

    ``errors`` is populated once the completion marker has been consumed. If
    the producer fails outside the per-unit error handling, iteration raises
    that exception. Use ``async with`` (or call ``aclose()``) when a consumer
    may stop before draining the stream, so the producer is cancelled.
    """

    def __init__(self, queue: "asyncio.Queue[Any]", task: "asyncio.Task[None]") -> None:
        self._queue = queue
        self._task = task
        self.errors: List[FetchError] = []
        self.done = False

    async def __aenter__(self) -> "ChunkStream[T]":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def __aiter__(self) -> AsyncIterator[List[T]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[List[T]]:
        while not self.done:
            item = await self._queue.get()
            if isinstance(item, _Completion):
                self.errors = item.errors
                self.done = True
                if item.failure is not None:
                    raise item.failure
                return
            yield item

    async def collect(self) -> List[T]:
        """Drain every chunk into one list.

        Holds the whole result set in memory, only use it for moderate input sizes.
        """
        out: List[T] = []
        async with self:
            async for chunk in self:
                out.extend(chunk)
        return out

    async def aclose(self) -> None:
        """Stop the producer. Calls already in flight are abandoned, not awaited."""
        if not self._task.done():
            self._task.cancel()
            await asyncio.wait({self._task})


class MassRequester:
    def __init__(
        self,
        *,
        chunk_size: int = 300,
        max_attempts: int = 3,
        retry_cooldown: float = 1.0,
        chunk_delay: float = 0.1,
        logging_enabled: bool = False,
        max_pending_chunks: int = 4,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.chunk_size = int(chunk_size)
        self.max_attempts = int(max_attempts)
        self.retry_cooldown = float(retry_cooldown)
        self.chunk_delay = float(chunk_delay)
        self.logging_enabled = logging_enabled
        self.max_pending_chunks = max_pending_chunks

    # --- Public API ---
    def stream(
        self,
        fn: Callable[[A], Awaitable[T]],
        args: Iterable[A],
        key_fn: Callable[[A], str],
        fail_value: T,
    ) -> ChunkStream[T]:
        """Start processing ``args`` in the background and return the stream of chunk results.

        Must be called from within a running event loop.
        """
        args_list = list(args)
        queue: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=self.max_pending_chunks)
        task = asyncio.create_task(self._produce(fn, args_list, key_fn, fail_value, queue))
        return ChunkStream(queue, task)

    async def run_one(
        self,
        fn: Callable[[A], Awaitable[T]],
        arg: A,
        key: str,
        fail_value: T,
    ) -> Tuple[T, List[FetchError]]:
        """Run a single call through the same retry policy, as a one-item chunk."""
        stream = self.stream(fn, [arg], lambda _: key, fail_value)
        results = await stream.collect()
        return results[0], stream.errors

    @staticmethod
    def log_errors(errors: Sequence[FetchError], title: str) -> None:
        if not errors:
            return
        logger.warning("%d errored %s", len(errors), title)
        for err in errors:
            logger.warning("%s: %s", err.key, err.message)

    # --- Internals ---
    async def _produce(
        self,
        fn: Callable[[A], Awaitable[T]],
        args: List[A],
        key_fn: Callable[[A], str],
        fail_value: T,
        queue: "asyncio.Queue[Any]",
    ) -> None:
        errors: List[FetchError] = []
        try:
            await self._chunked_fetch(fn, args, key_fn, fail_value, queue, errors)
        except Exception as exc:
            logger.error("Chunked fetch aborted: %s", exc)
            await queue.put(_Completion(errors, failure=exc))
            return
        await queue.put(_Completion(errors))

    async def _chunked_fetch(
        self,
        fn: Callable[[A], Awaitable[T]],
        args: List[A],
        key_fn: Callable[[A], str],
        fail_value: T,
        queue: "asyncio.Queue[Any]",
        errors: List[FetchError],
    ) -> None:
        chunk_count = math.ceil(len(args) / self.chunk_size)

        for chunk in range(chunk_count):
            chunk_args = args[chunk * self.chunk_size:(chunk + 1) * self.chunk_size]
            # fixed-length slots keep results in argument order whatever the completion order
            results: List[Optional[T]] = [None] * len(chunk_args)

            async def run_slot(index: int, arg: A) -> None:
                try:
                    results[index] = await self._multi_attempt(fn, arg)
                except Exception as exc:
                    errors.append(FetchError(key=key_fn(arg), error=exc))
                    results[index] = fail_value

            failed_before = len(errors)
            await asyncio.gather(*(run_slot(i, a) for i, a in enumerate(chunk_args)))

            if self.logging_enabled:
                logger.info(
                    "Chunk %d / %d done (%d items, %d failed)",
                    chunk + 1, chunk_count, len(chunk_args), len(errors) - failed_before,
                )

            await queue.put(results)

            if chunk != chunk_count - 1:
                await asyncio.sleep(self.chunk_delay)

    async def _multi_attempt(self, fn: Callable[[A], Awaitable[T]], arg: A) -> T:
        attempt = 0
        while True:
            try:
                return await fn(arg)
            except Exception as exc:
                attempt += 1
                if attempt >= self.max_attempts:
                    raise
                logger.debug("Attempt %d/%d failed for %r: %s", attempt, self.max_attempts, arg, exc)
                await asyncio.sleep(self.retry_cooldown * attempt)
