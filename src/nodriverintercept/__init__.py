import nodriver
from nodriver import cdp
from .core.handlers import RequestInterceptor
from .core.intercepted_request import (
    InterceptedRequest,
    RequestState,
)
from .core.chain import HandlerChain, Handler
from .core.decisions import (
    Decision,
    FailDecision,
    ContinueDecision,
    FulfillDecision,
    RequestOverrides,
    PASS_THROUGH,
)
from .core.errors import ResolutionConflictError
from .core.cdp_helpers import (
    TARGET_DOMAINS,
    assert_can_intercept,
    can_intercept,
    domains_for,
)

__all__ = [
    "nodriver",
    "cdp",
    "RequestInterceptor",
    "InterceptedRequest",
    "RequestState",
    "HandlerChain",
    "Handler",
    "Decision",
    "FailDecision",
    "ContinueDecision",
    "FulfillDecision",
    "RequestOverrides",
    "PASS_THROUGH",
    "ResolutionConflictError",
    "TARGET_DOMAINS",
    "assert_can_intercept",
    "can_intercept",
    "domains_for",
]
