from __future__ import annotations


# domains each CDP target type exposes, as far as interception cares.
# subframes roll their network traffic up to the owning tab, and chromium
# does not expose Fetch/Network to worker sessions (service workers included).
_PAGE = frozenset({"Page", "Runtime", "Network", "Fetch", "IO", "Target"})
_WORKER = frozenset({"Runtime"})

TARGET_DOMAINS: dict[str, frozenset[str]] = {
    "browser": frozenset({"Browser", "Target", "IO"}),
    "page": _PAGE,
    "tab": _PAGE,
    "webview": _PAGE,
    "guest": _PAGE,
    "background_page": _PAGE,
    "app": _PAGE,
    "other": _PAGE,
    "iframe": frozenset({"Runtime", "DOM"}),
    "worker": _WORKER,
    "dedicated_worker": _WORKER,
    "shared_worker": _WORKER,
    "service_worker": _WORKER | {"ServiceWorker"},
}


def domains_for(target_type: str) -> frozenset[str]:
    """domains a target type understands (empty for unknown types)."""
    return TARGET_DOMAINS.get(target_type.strip().lower(), frozenset())


def can_intercept(target_type: str) -> bool:
    """whether `Fetch.enable` is accepted on a session of this target type."""
    return {"Fetch", "Network"} <= domains_for(target_type)


def assert_can_intercept(target_type: str) -> None:
    """
    :raises ValueError: when `target_type` cannot pause requests itself.
    """
    if can_intercept(target_type):
        return
    raise ValueError(
        f"cannot enable request interception on a {target_type!r} target; "
        "attach to the owning tab instead"
    )


__all__ = [
    "TARGET_DOMAINS",
    "domains_for",
    "can_intercept",
    "assert_can_intercept",
]
