from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from aidetect.errors import ErrorCode
from aidetect.scoring.base import Label, Score


@dataclass(frozen=True)
class Region:
    x: float
    y: float
    width: float
    height: float

    def scaled(self, sx: float, sy: float) -> "Region":
        return Region(self.x * sx, self.y * sy, self.width * sx, self.height * sy)


@dataclass(frozen=True)
class Annotation:
    region: Region  # sampling space
    score: Score
    created_at: float  # monotonic seconds
    ttl: float  # seconds

    def expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


class SourceRef(BaseModel):
    """Opaque handle for a capture source chosen by the provider."""

    model_config = ConfigDict(frozen=True)

    kind: str
    uri: str
    format: str | None = None
    options: dict[str, str] = Field(default_factory=dict)
    label: str = ""


class ErrorInfo(BaseModel):
    code: ErrorCode
    message: str = ""


class Message(BaseModel):
    """Base for everything that crosses a context boundary."""

    model_config = ConfigDict(populate_by_name=True)

    kind: ClassVar[str] = ""

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class BeginCapture(Message):
    kind: ClassVar[str] = "begin_capture"

    stream_ref: SourceRef = Field(alias="streamRef")
    owner: str | None = None


class StopCapture(Message):
    kind: ClassVar[str] = "stop_capture"

    owner: str | None = None


class Box(BaseModel):
    x: float
    y: float
    w: float
    h: float
    score: float
    label: str


class AnnotationBatch(Message):
    kind: ClassVar[str] = "annotation_batch"

    boxes: list[Box] = Field(default_factory=list)
    frame_w: float = Field(alias="frameW", gt=0)
    frame_h: float = Field(alias="frameH", gt=0)

    @classmethod
    def from_scored(
        cls, scored: list[tuple[Region, Score]], frame_w: float, frame_h: float
    ) -> "AnnotationBatch":
        boxes = [
            Box(
                x=r.x,
                y=r.y,
                w=r.width,
                h=r.height,
                score=s.value,
                label=s.label.value,
            )
            for r, s in scored
        ]
        return cls(boxes=boxes, frameW=frame_w, frameH=frame_h)

    def to_annotations(self, now: float, ttl: float) -> list[Annotation]:
        return [
            Annotation(
                region=Region(b.x, b.y, b.w, b.h),
                score=Score(b.score, Label.from_text(b.label)),
                created_at=now,
                ttl=ttl,
            )
            for b in self.boxes
        ]


class StartOverlay(Message):
    kind: ClassVar[str] = "start_overlay"


class FeedbackMark(Message):
    kind: ClassVar[str] = "feedback_mark"

    value: str


class ContextClosed(Message):
    """Lifecycle signal: the named context went away."""

    kind: ClassVar[str] = "context_closed"

    context: str


class Reply(Message):
    kind: ClassVar[str] = "reply"

    ok: bool = True
    data: dict[str, Any] = Field(default_factory=dict)
    error: ErrorInfo | None = None

    @classmethod
    def failure(cls, code: ErrorCode, message: str = "") -> "Reply":
        return cls(ok=False, error=ErrorInfo(code=code, message=message))


MESSAGE_TYPES: dict[str, type[Message]] = {
    cls.kind: cls
    for cls in (
        BeginCapture,
        StopCapture,
        AnnotationBatch,
        StartOverlay,
        FeedbackMark,
        ContextClosed,
        Reply,
    )
}


class Envelope(BaseModel):
    kind: str
    sender: str
    target: str
    correlation_id: str | None = None
    reply_to: str | None = None
    # Sub-source inside the sender, e.g. one capture owner
    source: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    def decode(self) -> Message:
        cls = MESSAGE_TYPES.get(self.kind)
        if cls is None:
            raise ValueError(f"unknown message kind {self.kind!r}")
        return cls.model_validate(self.payload)
