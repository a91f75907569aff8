"""a single paused request, resolvable exactly once.

built from a `cdp.fetch.RequestPaused` event by `RequestInterceptor`. handlers
read the inspection properties, then issue one decision:

- `abort()` / `fail()` -> `Fetch.failRequest` (reason `Failed`, identical)
- `continue_()` -> hand the request to the next handler (or pass it through)
- `defer_to_browser(overrides)` -> `Fetch.continueRequest` with only the given overrides
- `fulfill(status, headers, body)` -> `Fetch.fulfillRequest`

every terminal decision goes through `resolve()`, which is the only place the
request moves from PENDING to RESOLVED. a second decision raises
`ResolutionConflictError` and sends nothing.

decision methods return the `asyncio.Task` sending the command, so sync handlers
can fire and forget while async handlers can `await` it to see transport errors:

```python
async def block_images(request):
    if request.resource_type == "Image":
        await request.abort()
    else:
        await request.continue_()
```
"""

from __future__ import annotations

import asyncio
import contextvars
import enum
import logging
from collections.abc import Coroutine, Iterable, Mapping
from types import MappingProxyType

import nodriver
from nodriver import cdp

from .chain import Handler, HandlerChain
from .decisions import (
    PASS_THROUGH,
    ContinueDecision,
    Decision,
    FailDecision,
    FulfillDecision,
    RequestOverrides,
)
from .errors import ResolutionConflictError

logger = logging.getLogger("nodriverintercept.InterceptedRequest")


class RequestState(enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class InterceptedRequest:
    """inspectable, resolvable view of one paused request.

    :param connection: `Tab` or `Connection` the request was paused on; commands go here.
    :param ev: the `RequestPaused` event.
    :param handlers: handlers to dispatch through. copied, so later changes to the
        caller's list do not affect this request.
    :param tasks: optional set shared with the owner so it can drain outstanding
        handler / command tasks on shutdown.
    """

    def __init__(self,
        connection: nodriver.Tab | nodriver.Connection,
        ev: cdp.fetch.RequestPaused,
        handlers: Iterable[Handler] = (),
        tasks: set[asyncio.Task] | None = None,
    ):
        self.connection = connection
        self._request_id = cdp.fetch.RequestId(ev.request_id)
        self._url: str = ev.request.url
        self._method: str = ev.request.method
        self._headers = MappingProxyType(dict(ev.request.headers or {}))
        self._post_data: str | None = getattr(ev.request, "post_data", None)
        resource_type = ev.resource_type
        self._resource_type: str = getattr(resource_type, "value", resource_type)
        self.chain = HandlerChain(handlers)
        self.state = RequestState.PENDING
        self.decision: Decision | None = None
        self.tasks: set[asyncio.Task] = tasks if tasks is not None else set()


    def __repr__(self):
        return f"<InterceptedRequest {self._request_id} {self._method} {self._url} ({self.state.value})>"


    @property
    def request_id(self) -> cdp.fetch.RequestId:
        return self._request_id

    @property
    def url(self) -> str:
        return self._url

    @property
    def method(self) -> str:
        return self._method

    @property
    def headers(self) -> Mapping[str, str]:
        """request headers as received (read-only, empty when absent)."""
        return self._headers

    @property
    def resource_type(self) -> str:
        """chrome's resource classification, e.g. `Document`, `Script`, `Image`."""
        return self._resource_type

    @property
    def post_data(self) -> str | None:
        return self._post_data

    @property
    def resolved(self) -> bool:
        return self.state is RequestState.RESOLVED


    def dispatch(self) -> asyncio.Future:
        """start the handler chain. called once by the owner right after construction."""
        return self.chain.advance(self)


    def abort(self) -> asyncio.Task:
        """abort the request (`Fetch.failRequest`, reason `Failed`)."""
        logger.debug("abort %s", self._url)
        return self.resolve(FailDecision())


    def fail(self) -> asyncio.Task:
        """fail the request. same command as `abort()`."""
        logger.debug("fail %s", self._url)
        return self.resolve(FailDecision())


    def continue_(self) -> asyncio.Future:
        """fall through to the next handler, or pass the request through if none remain.

        the next handler is invoked before this returns, but its async work is
        not awaited: the returned future is already done, unless the chain was
        exhausted, in which case it is the pass-through command task. a failure
        in a later handler is reported against that handler, never this one.

        :raises ResolutionConflictError: when the request is already resolved, or
            when the calling handler already handed the request on.
        """
        logger.debug("continue %s", self._url)
        self._guard()
        if not self.chain.holds():
            raise ResolutionConflictError(
                self._request_id, self._url, "handler already continued this request"
            )
        return self.chain.advance(self)


    def defer_to_browser(self,
        overrides: RequestOverrides | Mapping | None = None,
        **fields,
    ) -> asyncio.Task:
        """let the request go to the network now, skipping any remaining handlers.

        only the overrides that are given (`url`, `method`, `headers`) are sent.

        ```python
        request.defer_to_browser(method="POST")
        request.defer_to_browser({"headers": {"X-Debug": "1"}})
        ```

        :param overrides: `RequestOverrides` or a mapping with the same keys.
        :param fields: overrides as keyword args; win over `overrides`.
        :raises ValueError: on unknown override keys.
        """
        logger.debug("defer to browser %s", self._url)
        o = RequestOverrides.coerce(overrides, **fields)
        return self.resolve(PASS_THROUGH if o.empty else ContinueDecision(o))


    def fulfill(self,
        status: int | None = None,
        headers: Mapping[str, str] | None = None,
        body: str | bytes | None = None,
    ) -> asyncio.Task:
        """answer the request with a synthetic response.

        see `FulfillDecision.build()` for how headers and content-length are shaped.

        :param status: http status code (default 200).
        :param headers: response headers; names are lower-cased.
        :param body: response body; `str` is sent utf-8 encoded.
        """
        logger.debug("fulfill %s", self._url)
        return self.resolve(FulfillDecision.build(status, headers, body))


    def resolve(self, decision: Decision) -> asyncio.Task:
        """move PENDING -> RESOLVED and send the decision's command.

        :raises ResolutionConflictError: if the request was already resolved.
        :return: task for the command; awaiting it surfaces transport errors.
        """
        self._guard()
        self.state = RequestState.RESOLVED
        self.decision = decision
        logger.debug("resolved %s with %s", self._url, type(decision).__name__)
        task = asyncio.get_running_loop().create_task(
            self._send(decision.command(self._request_id))
        )
        self._track(task)
        return task


    def spawn_handler(self,
        coro: Coroutine,
        handler: Handler,
        context: contextvars.Context | None = None,
    ) -> asyncio.Task:
        """schedule the coroutine an async handler returned.

        a failure is handed to the loop's exception handler once, naming `handler`.
        """
        task = asyncio.get_running_loop().create_task(coro, context=context)
        self._track(task, handler)
        return task


    def _guard(self):
        if self.state is RequestState.RESOLVED:
            raise ResolutionConflictError(self._request_id, self._url)


    async def _send(self, cmd):
        await self.connection.send(cmd)
        logger.debug("sent %s for %s", type(self.decision).__name__, self._url)


    def _track(self, task: asyncio.Task, handler: Handler | None = None):
        # command tasks surface their errors to whoever awaits them;
        # handler tasks have no awaiter, so their errors go to the loop
        self.tasks.add(task)

        def _on_done(t: asyncio.Task):
            self.tasks.discard(t)
            if handler is None or t.cancelled() or t.exception() is None:
                return
            name = getattr(handler, "__qualname__", repr(handler))
            t.get_loop().call_exception_handler({
                "message": f"request handler {name} failed for {self._url}",
                "exception": t.exception(),
                "task": t,
            })

        task.add_done_callback(_on_done)
