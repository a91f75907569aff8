"""`Fetch.requestPaused` interception layered over raw `nodriver` events.

turns every paused request on a tab into an `InterceptedRequest` and runs it
through the registered handlers in order. each handler either decides the
request or calls `continue_()`; the first decision wins and becomes exactly one
`Fetch.*` command. if every handler continues, the request goes out untouched.

design notes:
- each request gets a snapshot of the handler list taken when it was paused,
  so `add_handler()` / `remove_handler()` never change in-flight requests
- handlers can be plain functions or coroutine functions
- the tasks set lets `stop()` drain outstanding handler + command work
- no timeout: a handler that never decides leaves the request paused

quick start:

```python
tab = await browser.get("about:blank")
interceptor = RequestInterceptor(tab)

async def no_images(request):
    if request.resource_type == "Image":
        await request.abort()
    else:
        await request.continue_()

interceptor.add_handler(no_images)
await interceptor.start()
```
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

import nodriver
from nodriver import cdp

from ..cdp_helpers import assert_can_intercept
from ..chain import Handler
from ..intercepted_request import InterceptedRequest

logger = logging.getLogger("nodriverintercept.RequestInterceptor")

class RequestInterceptor:
    """
    owns the handler registration list for one tab / connection and turns
    `RequestPaused` events into dispatched `InterceptedRequest`s.

    config (keyword args):
    - `url_patterns`: wildcard url patterns to pause on (default `("*",)`)
    - `resource_types`: optional resource types to restrict each pattern to
      (e.g. `["Document", "XHR"]`); `None` pauses every type
    - `target_type`: CDP target type of `connection`; checked for `Fetch` support
    - `disable_on_stop`: send `Fetch.disable` in `stop()`

    **NOTE**: only request-stage patterns are enabled. if some other party turns on
    response-stage interception for the same tab, those pauses are continued
    untouched.
    """

    connection: nodriver.Tab | nodriver.Connection
    tasks: set[asyncio.Task]

    def __init__(self,
        connection: nodriver.Tab | nodriver.Connection,
        handlers: Iterable[Handler] | None = None,
        *,
        url_patterns: Iterable[str] = ("*",),
        resource_types: Iterable[str | cdp.network.ResourceType] | None = None,
        target_type: str = "tab",
        disable_on_stop: bool = True,
    ):
        """initialize a `RequestInterceptor` for a given `Tab` or `Connection`.

        :param connection: where `Fetch` is enabled and commands are sent.
        :param handlers: initial handlers, in dispatch order.
        """
        self.connection = connection
        self._handlers: list[Handler] = list(handlers or [])
        self.url_patterns = list(url_patterns)
        self.resource_types = [
            rt if isinstance(rt, cdp.network.ResourceType) else cdp.network.ResourceType(rt)
            for rt in resource_types
        ] if resource_types is not None else None
        self.target_type = target_type
        self.disable_on_stop = disable_on_stop
        self.tasks = set()
        self._requests: dict[str, InterceptedRequest] = {}
        self._started = False

    @property
    def handlers(self) -> tuple[Handler, ...]:
        """current registration list (copy)."""
        return tuple(self._handlers)

    @property
    def pending(self) -> int:
        """number of dispatched requests still waiting on a decision."""
        self._prune()
        return len(self._requests)

    def add_handler(self, handler: Handler):
        """register a handler; it runs after every handler registered before it.

        :param handler: `handler(request)`, sync or async.
        """
        self._handlers.append(handler)

    def remove_handler(self, handler: Handler):
        """unregister a handler. requests already paused keep their snapshot.

        :raises ValueError: if the handler is not registered.
        """
        self._handlers.remove(handler)

    def patterns(self) -> list[cdp.fetch.RequestPattern]:
        """build the `Fetch.enable` patterns from `url_patterns` x `resource_types`."""
        patterns = []
        for url in self.url_patterns:
            for rt in self.resource_types or [None]:
                patterns.append(cdp.fetch.RequestPattern(
                    url_pattern=url,
                    resource_type=rt,
                    request_stage=cdp.fetch.RequestStage.REQUEST,
                ))
        return patterns

    def handle(self,
        ev: cdp.fetch.RequestPaused,
        connection: nodriver.Tab | nodriver.Connection | None = None,
    ) -> InterceptedRequest | None:
        """public entry: wrap `ev` and schedule its dispatch as a task.

        the handler snapshot is taken here, synchronously, but handlers only run
        inside the scheduled task. nothing a handler raises can escape this
        callback, so nodriver never re-delivers the event; handler errors go to
        the loop's exception handler instead.

        :param ev: interception event from the tab.
        :param connection: the connection nodriver received `ev` on (unused; commands
            always go to `self.connection`).
        :return: the request, or `None` for response-stage pauses and repeats of
            a request that is still pending.
        """
        if ev.response_status_code is not None or ev.response_error_reason is not None:
            logger.debug("continuing response-stage pause for %s", ev.request.url)
            task = asyncio.get_running_loop().create_task(
                self.connection.send(cdp.fetch.continue_response(ev.request_id))
            )
            self.tasks.add(task)
            task.add_done_callback(self.tasks.discard)
            return None

        self._prune()
        if ev.request_id in self._requests:
            logger.debug("ignoring repeated pause for %s (%s)", ev.request.url, ev.request_id)
            return None

        logger.debug("successfully intercepted request for %s", ev.request.url)
        request = InterceptedRequest(
            self.connection,
            ev,
            self.handlers,
            self.tasks,
        )
        self._requests[request.request_id] = request
        task = asyncio.get_running_loop().create_task(self._dispatch(request))
        self.tasks.add(task)
        task.add_done_callback(lambda t: self._on_dispatched(t, request))
        return request

    def __call__(self, ev: cdp.fetch.RequestPaused, connection=None):
        self.handle(ev, connection)

    async def _dispatch(self, request: InterceptedRequest):
        request.dispatch()

    def _on_dispatched(self, task: asyncio.Task, request: InterceptedRequest):
        self.tasks.discard(task)
        if task.cancelled() or task.exception() is None:
            return
        # a sync handler raised; the request stays paused
        task.get_loop().call_exception_handler({
            "message": f"request handler failed dispatching {request.url}",
            "exception": task.exception(),
            "task": task,
        })

    def _prune(self):
        # resolved requests are kept alive by their command task until it settles
        for request_id, request in list(self._requests.items()):
            if request.resolved:
                del self._requests[request_id]

    async def wait_for_tasks(self):
        """await all outstanding handler and command tasks."""
        logger.info("waiting for pending tasks to finish")
        # handlers can schedule command tasks while we wait
        while self.tasks:
            results = await asyncio.gather(*list(self.tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.warning("interception task failed: %s", result)
        logger.info("all pending tasks finished")

    async def start(self):
        """
        enable request interception on the connection and subscribe to `RequestPaused`
        """
        if self._started:
            return
        assert_can_intercept(self.target_type)
        self._started = True
        await self.connection.send(cdp.fetch.enable(self.patterns()))
        self.connection.add_handler(cdp.fetch.RequestPaused, self.handle)
        logger.info("request interception started with %d handler(s)", len(self._handlers))

    async def stop(self, remove_handler = True, wait_for_tasks = True):
        """
        stop request interception and wait for pending tasks if specified

        :param remove_handler: whether to remove the `RequestPaused` handler
        :param wait_for_tasks: whether to wait for outstanding tasks to complete
        """
        if not self._started:
            return
        self._started = False
        if remove_handler:
            self.connection.remove_handler(cdp.fetch.RequestPaused, self.handle)
        if wait_for_tasks:
            await self.wait_for_tasks()
        if self.disable_on_stop:
            await self.connection.send(cdp.fetch.disable())
        if self.pending:
            logger.warning("stopped with %d request(s) still paused", self.pending)
