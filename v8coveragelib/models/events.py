from enum import Enum
from typing import Any, Optional

from pydantic import Field

from .base import CoverageBaseModel


class EventKind(str, Enum):
    CLIENT = "client"
    LIVE = "live"
    BACKEND = "backend"
    SSR = "ssr"


class CollectionEvent(CoverageBaseModel):
    """One pull of coverage for one logical unit (a test, a backend request, a page load)."""

    label: str
    kind: EventKind
    project_root: Optional[str] = Field(
        default=None,
        description="Logical root used to localize paths when several applications share one run",
    )
    payload: Any = None


class HostConfig(CoverageBaseModel):
    url: str
    comment: str
    project_root: Optional[str] = None
    kind: EventKind = EventKind.BACKEND
