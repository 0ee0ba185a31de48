"""Cross-view synchronisation package."""

from .coordinator import (
    ViewCoordinator,
    COMMANDS,
    LEASE_NAME,
    LEASE_TTL_SECONDS,
    POLL_INTERVAL_MS,
    new_view_id,
)

__all__ = [
    "ViewCoordinator",
    "COMMANDS",
    "LEASE_NAME",
    "LEASE_TTL_SECONDS",
    "POLL_INTERVAL_MS",
    "new_view_id",
]
