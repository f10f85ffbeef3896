from enum import Enum


class ErrorCode(str, Enum):
    SOURCE_UNAVAILABLE = "source_unavailable"
    BUSY = "busy"
    TIMEOUT = "timeout"
    MALFORMED_SAMPLE = "malformed_sample"
    RENDER_TARGET_LOST = "render_target_lost"
    INTERNAL = "internal"


class AidetectError(Exception):
    """Base error; ``code`` is what crosses a context boundary."""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code.value)
        self.message = message or self.code.value

    def to_info(self) -> "ErrorInfo":
        from aidetect.messages import ErrorInfo

        return ErrorInfo(code=self.code, message=self.message)


class SourceUnavailableError(AidetectError):
    """User declined or no source could be opened. Not retried."""

    code = ErrorCode.SOURCE_UNAVAILABLE


class BusyError(AidetectError):
    """A stream is already requested or active for this owner."""

    code = ErrorCode.BUSY


class RequestTimeoutError(AidetectError):
    code = ErrorCode.TIMEOUT


class MalformedSampleError(AidetectError):
    code = ErrorCode.MALFORMED_SAMPLE


class RenderTargetLostError(AidetectError):
    code = ErrorCode.RENDER_TARGET_LOST
