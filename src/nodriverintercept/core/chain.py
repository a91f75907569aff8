from __future__ import annotations

import asyncio
import contextvars
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Awaitable, Callable, Union

from .decisions import PASS_THROUGH

if TYPE_CHECKING:
    from .intercepted_request import InterceptedRequest

logger = logging.getLogger("nodriverintercept.HandlerChain")

Handler = Callable[["InterceptedRequest"], Union[Awaitable[None], None]]

# (chain, position) of the handler whose call we are inside, if any.
# set in a fresh context per invocation; async handlers carry it into their task.
_holder: contextvars.ContextVar[tuple["HandlerChain", int] | None] = contextvars.ContextVar(
    "nodriverintercept_chain_holder", default=None
)


class HandlerChain:
    """chain-of-responsibility over an immutable snapshot of handlers.

    handlers run strictly in the order given. each one either decides the
    request (abort / fail / defer / fulfill) or calls `continue_()` to hand it to
    the next. when the snapshot is exhausted the request is passed through
    unmodified.

    the snapshot is taken at construction, so registering or removing handlers
    afterwards never changes a chain that is already running.

    **NOTE**: the chain never catches handler errors. a synchronous handler
    that raises propagates to whoever called `advance()`; an async handler's
    failure goes to the running loop's exception handler. either way the
    request stays paused.
    """

    def __init__(self, handlers: Iterable[Handler] = ()):
        self._handlers: tuple[Handler, ...] = tuple(handlers)
        self._cursor = 0

    def __len__(self):
        return len(self._handlers)

    @property
    def position(self) -> int:
        """index of the handler currently holding the request (-1 before dispatch)."""
        return self._cursor - 1

    @property
    def remaining(self) -> int:
        return len(self._handlers) - self._cursor

    @property
    def exhausted(self) -> bool:
        return self._cursor >= len(self._handlers)

    def holds(self) -> bool:
        """whether the calling context may move this chain forward.

        calls made from outside any handler of this chain always may.
        """
        holder = _holder.get()
        if holder is None or holder[0] is not self:
            return True
        return holder[1] == self.position

    def advance(self, request: "InterceptedRequest") -> asyncio.Future:
        """invoke the next handler, or pass the request through if none remain.

        never waits on the handler. a coroutine it returns is scheduled as a
        task owned by the request, so its failures are reported once, against
        that handler. the returned future is already done once the handler has
        been invoked; only when the chain is exhausted is it the pass-through
        command task.

        :param request: the paused request being dispatched.
        """
        if self.exhausted:
            logger.debug("no handlers left for %s, passing through", request.url)
            return request.resolve(PASS_THROUGH)

        position = self._cursor
        handler = self._handlers[position]
        self._cursor += 1
        logger.debug("handler %d/%d for %s: %r",
            position + 1, len(self._handlers), request.url, handler
        )

        ctx = contextvars.copy_context()
        ctx.run(_holder.set, (self, position))
        result = ctx.run(handler, request)
        # tasks/futures returned by decision methods are already tracked by the request
        if asyncio.iscoroutine(result):
            request.spawn_handler(result, handler, ctx)

        fut = asyncio.get_running_loop().create_future()
        fut.set_result(None)
        return fut
