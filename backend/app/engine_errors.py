from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "empty_graph",
        "endpoint_unresolved",
        "degenerate_endpoints",
        "disconnected_graph",
        "no_route_candidates",
    }
)


@dataclass
class EngineError(ValueError):
    """Request-level routing failure.

    Raised only when the whole request cannot be optimised; the caller is
    expected to present the baseline routes unmodified.
    """

    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class ProviderUnavailable(RuntimeError):
    """A single air-quality provider failed (network, timeout, bad status or bad payload)."""

    def __init__(self, provider: str, detail: str) -> None:
        super().__init__(f"{provider}: {detail}")
        self.provider = provider
        self.detail = detail


def normalize_reason_code(reason_code: str, *, default: str = "no_route_candidates") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
