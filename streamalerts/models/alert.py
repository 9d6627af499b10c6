"""Canonical alert event delivered to presentation clients."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

ANONYMOUS = "Anonymous"


class AlertKind(StrEnum):
    FOLLOW = "follow"
    SUBSCRIPTION = "subscription"
    RAID = "raid"
    CHEER = "cheer"


@dataclass(frozen=True)
class AlertEvent:
    """Normalized, presentation-agnostic alert. Attributes are read-only."""

    kind: AlertKind
    actor: str
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def to_payload(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "actor": self.actor,
            "attributes": dict(self.attributes),
        }
