"""terminal decisions for a paused request and the `Fetch.*` commands they map to.

every decision is a small frozen dataclass with a `command(request_id)` method
returning the `nodriver.cdp` command generator to hand to `connection.send()`.

- `FailDecision` -> `Fetch.failRequest`
- `ContinueDecision` -> `Fetch.continueRequest` (only present overrides are sent)
- `FulfillDecision` -> `Fetch.fulfillRequest` (lower-cased headers, computed
  content-length, base64 body)

`PASS_THROUGH` is the continue decision with no overrides. it is what the chain
issues once every handler has called `continue_()`, and what
`defer_to_browser()` issues when given nothing to override.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Union

from nodriver import cdp


@dataclass(frozen=True)
class RequestOverrides:
    """optional overrides applied before the request hits the network.

    a field counts as present when it is not `None`.

    :param url: replacement url.
    :param method: replacement http method.
    :param headers: replacement header mapping (sent as-is, names untouched).
    """
    url: str | None = None
    method: str | None = None
    headers: Mapping[str, str] | None = None

    @classmethod
    def coerce(cls, overrides: RequestOverrides | Mapping | None = None, **kwargs) -> "RequestOverrides":
        """build overrides from a `RequestOverrides`, a mapping, keyword args, or nothing.

        keyword args win over the positional value.

        :raises ValueError: on keys other than `url`, `method`, `headers`.
        :raises TypeError: on anything that is not a mapping or `RequestOverrides`.
        """
        if isinstance(overrides, RequestOverrides):
            values = {f.name: getattr(overrides, f.name) for f in fields(cls)}
        elif overrides is None:
            values = {}
        elif isinstance(overrides, Mapping):
            values = dict(overrides)
        else:
            raise TypeError(f"overrides must be a mapping or RequestOverrides, got {type(overrides).__name__}")
        values.update(kwargs)
        unknown = set(values) - {f.name for f in fields(cls)}
        if unknown:
            raise ValueError(f"unsupported request overrides: {sorted(unknown)}")
        headers = values.get("headers")
        if headers is not None and not isinstance(headers, Mapping):
            raise TypeError("headers override must be a mapping of name -> value")
        return cls(**values)

    @property
    def empty(self) -> bool:
        return self.url is None and self.method is None and self.headers is None

    def present(self) -> dict:
        """return only the fields that were set."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class FailDecision:
    """fail the request outright. `abort()` and `fail()` both produce this."""
    error_reason: cdp.network.ErrorReason = cdp.network.ErrorReason.FAILED

    def command(self, request_id: cdp.fetch.RequestId):
        return cdp.fetch.fail_request(request_id, self.error_reason)


@dataclass(frozen=True)
class ContinueDecision:
    """let the request proceed, optionally modified."""
    overrides: RequestOverrides = field(default_factory=RequestOverrides)

    def command(self, request_id: cdp.fetch.RequestId):
        params = self.overrides.present()
        if "headers" in params:
            # continueRequest takes a header array, not a mapping
            params["headers"] = [
                cdp.fetch.HeaderEntry(name=k, value=v) for k, v in params["headers"].items()
            ]
        return cdp.fetch.continue_request(request_id, **params)


PASS_THROUGH = ContinueDecision()


@dataclass(frozen=True)
class FulfillDecision:
    """answer the request with a synthetic response.

    build it with `FulfillDecision.build()` so header names and
    content-length are shaped the way chrome expects.
    """
    status: int
    headers: tuple[cdp.fetch.HeaderEntry, ...]
    body: bytes

    @classmethod
    def build(cls,
        status: int | None = None,
        headers: Mapping[str, str] | None = None,
        body: str | bytes | bytearray | memoryview | None = None,
    ) -> "FulfillDecision":
        """shape a fulfill response.

        - `status` defaults to 200
        - header names are lower-cased, values kept verbatim, order kept
        - when a body is given and no `content-length` was supplied (any case),
          one is appended with the body's byte length
        - `str` bodies are utf-8 encoded; a missing body is sent empty

        :raises TypeError: for a non-int status or an unsupported body type.
        """
        if status is None:
            status = 200
        if isinstance(status, bool) or not isinstance(status, int):
            raise TypeError(f"status must be an int, got {type(status).__name__}")

        entries: list[cdp.fetch.HeaderEntry] = []
        has_content_length = False
        for name, value in (headers or {}).items():
            name = name.lower()
            if name == "content-length":
                has_content_length = True
            entries.append(cdp.fetch.HeaderEntry(name=name, value=str(value)))

        if body is None:
            data = b""
        elif isinstance(body, str):
            data = body.encode("utf-8")
        elif isinstance(body, (bytes, bytearray, memoryview)):
            data = bytes(body)
        else:
            raise TypeError(f"body must be str or bytes, got {type(body).__name__}")

        if body is not None and not has_content_length:
            entries.append(cdp.fetch.HeaderEntry(name="content-length", value=str(len(data))))

        return cls(status=status, headers=tuple(entries), body=data)

    @property
    def encoded_body(self) -> str:
        # the protocol channel only carries text
        return base64.b64encode(self.body).decode()

    def command(self, request_id: cdp.fetch.RequestId):
        return cdp.fetch.fulfill_request(
            request_id,
            self.status,
            response_headers=list(self.headers),
            body=self.encoded_body,
        )


Decision = Union[FailDecision, ContinueDecision, FulfillDecision]
