"""Consumer-side handle for streaming completions."""

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable

from resumeai.providers.base import StreamChunk
from resumeai.providers.errors import StreamTimeoutError

logger = logging.getLogger(__name__)


class CompletionStream:
    """Async iterator over a provider stream with an idle timeout.

    The provider stream is opened lazily on first iteration. Waiting longer
    than ``idle_timeout`` for the next chunk closes the vendor connection and
    raises ``StreamTimeoutError``. ``on_complete`` runs once, only after the
    completion marker has been received.

        async with service.generate_streaming_completion(request) as stream:
            async for chunk in stream:
                ...
    """

    def __init__(
        self,
        opener: Callable[[], Awaitable[AsyncGenerator[StreamChunk, None]]],
        idle_timeout: float = 30.0,
        on_complete: Callable[[], Awaitable[None]] | None = None,
        provider: str = "unknown",
    ):
        self._opener = opener
        self.idle_timeout = idle_timeout
        self._on_complete = on_complete
        self.provider = provider
        self._source: AsyncGenerator[StreamChunk, None] | None = None
        self.completed = False
        self.closed = False

    def __aiter__(self) -> "CompletionStream":
        return self

    async def __anext__(self) -> StreamChunk:
        if self.closed or self.completed:
            raise StopAsyncIteration
        if self._source is None:
            self._source = await self._opener()

        try:
            chunk = await asyncio.wait_for(self._source.__anext__(), timeout=self.idle_timeout)
        except StopAsyncIteration:
            await self.aclose()
            raise
        except asyncio.TimeoutError:
            await self.aclose()
            logger.warning(
                "Stream idle timeout",
                extra={"audit_data": {"provider": self.provider, "timeout_seconds": self.idle_timeout}},
            )
            raise StreamTimeoutError(
                f"No data received for {self.idle_timeout}s",
                provider=self.provider,
                details={"timeout_seconds": self.idle_timeout},
            ) from None
        except BaseException:
            await self.aclose()
            raise

        if chunk.is_complete:
            self.completed = True
            await self.aclose()
            if self._on_complete is not None:
                await self._on_complete()
        return chunk

    async def aclose(self) -> None:
        """Release the vendor connection. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        if self._source is not None:
            await self._source.aclose()

    async def __aenter__(self) -> "CompletionStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
