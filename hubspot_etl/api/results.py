"""Value types returned by the HubSpot gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass
class GatewayResult(Generic[T]):
    """Outcome of a gateway call. Failures carry a message instead of raising."""

    ok: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T) -> "GatewayResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def fail(cls, error: str) -> "GatewayResult[T]":
        return cls(ok=False, error=error)


@dataclass
class Page:
    records: list[dict[str, Any]] = field(default_factory=list)
    after: str | None = None


@dataclass
class AssociationDetails:
    """One edge from a v4 batch association read."""

    to_object_id: str
    label: str | None = None
    labels: list[str] = field(default_factory=list)
    type_id: int | None = None
    category: str | None = None
    source: str | None = None
    source_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
