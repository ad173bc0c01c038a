"""
Feed GitHub API responses into a RateLimitGovernor.

Install the hooks on an httpx client::

    client = httpx.Client(event_hooks={"response": [track_responses(governor)]})
"""

from typing import Awaitable, Callable, Mapping, Optional

import httpx

from .governor import RateLimitGovernor

HEADER_RESOURCE = "x-ratelimit-resource"
HEADER_LIMIT = "x-ratelimit-limit"

_PATH_RESOURCES = (
    ("/installations/", "installations"),
    ("/repos/", "repos"),
    ("/orgs/", "orgs"),
    ("/users/", "users"),
    ("/search/", "search"),
)


def determine_resource(url: str, headers: Optional[Mapping[str, str]] = None) -> str:
    """Resolve the quota bucket a response counts against.

    GitHub names the bucket in ``x-ratelimit-resource``; without it the
    request path decides.
    """
    if headers is not None:
        values = {str(key).lower(): value for key, value in headers.items()}
        resource = values.get(HEADER_RESOURCE)
        if resource:
            return resource.strip()

    path = httpx.URL(url).path
    if path.rstrip("/").endswith("/graphql"):
        return "graphql"
    for fragment, resource in _PATH_RESOURCES:
        if fragment in path:
            return resource
    return "core"


def record_response(governor: RateLimitGovernor, response: httpx.Response) -> Optional[str]:
    """Update ``governor`` from ``response``; returns the resource, or None when untracked."""
    if HEADER_LIMIT not in response.headers:
        return None

    resource = determine_resource(str(response.request.url), response.headers)
    governor.update_rate_limit(resource, response.headers)
    return resource


def track_responses(governor: RateLimitGovernor) -> Callable[[httpx.Response], None]:
    """Response event hook for ``httpx.Client``."""

    def hook(response: httpx.Response) -> None:
        record_response(governor, response)

    return hook


def track_responses_async(governor: RateLimitGovernor) -> Callable[[httpx.Response], Awaitable[None]]:
    """Response event hook for ``httpx.AsyncClient``."""

    async def hook(response: httpx.Response) -> None:
        record_response(governor, response)

    return hook
