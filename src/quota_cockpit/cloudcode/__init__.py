"""Cloud Code remote API client."""

from .client import (
    CloudCodeClient,
    CloudCodeResponse,
    OutcomeKind,
    ProjectInfo,
    RequestOptions,
    RequestOutcome,
    RouteOptions,
    backoff_delay,
    pick_onboard_tier,
)


__all__ = [
    "CloudCodeClient",
    "CloudCodeResponse",
    "OutcomeKind",
    "ProjectInfo",
    "RequestOptions",
    "RequestOutcome",
    "RouteOptions",
    "backoff_delay",
    "pick_onboard_tier",
]
