"""Structural-scan collaborator: a snapshot of a rendered document."""

from typing import Protocol

from pydantic import BaseModel, Field

from aidetect.messages import Region


class DocumentElement(BaseModel):
    selector: str
    x: float
    y: float
    w: float = Field(ge=0)
    h: float = Field(ge=0)
    text: str = ""

    @property
    def region(self) -> Region:
        return Region(self.x, self.y, self.w, self.h)


class DocumentSnapshot(BaseModel):
    viewport_width: float = Field(gt=0, alias="viewportWidth")
    viewport_height: float = Field(gt=0, alias="viewportHeight")
    elements: list[DocumentElement] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class DocumentSource(Protocol):
    async def snapshot(self) -> DocumentSnapshot | None:
        """Current elements with geometry, or None when nothing is loaded."""
        ...


class StaticDocumentSource:
    """Keeps the latest snapshot pushed by a client."""

    def __init__(self, snapshot: DocumentSnapshot | None = None) -> None:
        self._snapshot = snapshot

    def update(self, snapshot: DocumentSnapshot) -> None:
        self._snapshot = snapshot

    def clear(self) -> None:
        self._snapshot = None

    async def snapshot(self) -> DocumentSnapshot | None:
        return self._snapshot
