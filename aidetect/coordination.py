"""Typed message passing between isolated execution contexts.

Every context owns one ``CoordinationBus`` bound to its name. Messages are
serialised to plain dicts before they leave the context, so a handler can
never reach into another context's objects. Each context drains its inbox
with a single worker task: delivery is FIFO per channel and handlers of one
context never interleave.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from aidetect.bus import LIFECYCLE_TOPIC, EventBus, context_topic
from aidetect.config import config
from aidetect.errors import AidetectError, ErrorCode, RequestTimeoutError
from aidetect.messages import ContextClosed, Envelope, Message, Reply

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any, Envelope], Awaitable[Reply | None]]


class CoordinationBus:
    def __init__(
        self,
        event_bus: EventBus,
        context: str,
        request_timeout_s: float | None = None,
    ) -> None:
        self.context = context
        self._event_bus = event_bus
        self._timeout = (
            request_timeout_s
            if request_timeout_s is not None
            else config.bus.request_timeout_s
        )
        self._handlers: dict[str, list[MessageHandler]] = defaultdict(list)
        self._pending: dict[str, asyncio.Future[Reply]] = {}
        self._inbox: asyncio.Queue[Envelope] | None = None
        self._worker: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def subscribe(self, kind: str, handler: MessageHandler) -> None:
        self._handlers[kind].append(handler)

    async def start(self) -> None:
        if self.running:
            return
        self._inbox = asyncio.Queue()
        await self._event_bus.subscribe(context_topic(self.context), self._on_envelope)
        await self._event_bus.subscribe(LIFECYCLE_TOPIC, self._on_lifecycle)
        self._worker = asyncio.create_task(self._drain(), name=f"bus:{self.context}")
        logger.debug("Context %s attached to bus", self.context)

    async def close(self) -> None:
        """Detach from the bus and tell the other contexts we are gone."""
        if not self.running:
            return
        await self._event_bus.unsubscribe(context_topic(self.context), self._on_envelope)
        await self._event_bus.unsubscribe(LIFECYCLE_TOPIC, self._on_lifecycle)

        for future in self._pending.values():
            if not future.done():
                future.set_result(
                    Reply.failure(ErrorCode.TIMEOUT, f"context {self.context} closed")
                )
        self._pending.clear()

        assert self._worker is not None
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

        closed = Envelope(
            kind=ContextClosed.kind,
            sender=self.context,
            target="*",
            payload=ContextClosed(context=self.context).to_payload(),
        )
        await self._event_bus.publish_lifecycle(closed.model_dump(mode="json"))
        logger.debug("Context %s detached from bus", self.context)

    async def send(self, target: str, message: Message, source: str | None = None) -> None:
        """Fire-and-forget delivery to ``target``."""
        envelope = Envelope(
            kind=message.kind,
            sender=self.context,
            target=target,
            source=source,
            payload=message.to_payload(),
        )
        await self._event_bus.publish_to_context(target, envelope.model_dump(mode="json"))

    async def request(self, target: str, message: Message) -> Reply:
        """Single round trip. Never raises: failures come back as ``Reply``."""
        correlation_id = uuid.uuid4().hex
        future: asyncio.Future[Reply] = asyncio.get_running_loop().create_future()
        self._pending[correlation_id] = future

        envelope = Envelope(
            kind=message.kind,
            sender=self.context,
            target=target,
            correlation_id=correlation_id,
            reply_to=self.context,
            payload=message.to_payload(),
        )
        try:
            await self._event_bus.publish_to_context(
                target, envelope.model_dump(mode="json")
            )
            return await asyncio.wait_for(future, self._timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Request %s to %s timed out after %.1fs",
                message.kind,
                target,
                self._timeout,
            )
            error = RequestTimeoutError(
                f"{target} did not answer {message.kind} within {self._timeout:.1f}s"
            )
            return Reply(ok=False, error=error.to_info())
        finally:
            self._pending.pop(correlation_id, None)

    async def _on_envelope(self, raw: dict[str, Any]) -> None:
        try:
            envelope = Envelope.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Dropping malformed envelope for %s: %s", self.context, exc)
            return

        if envelope.kind == Reply.kind:
            self._resolve(envelope)
            return

        if self._inbox is not None:
            self._inbox.put_nowait(envelope)

    async def _on_lifecycle(self, raw: dict[str, Any]) -> None:
        envelope = Envelope.model_validate(raw)
        if envelope.sender == self.context or self._inbox is None:
            return
        self._inbox.put_nowait(envelope)

    def _resolve(self, envelope: Envelope) -> None:
        future = self._pending.get(envelope.correlation_id or "")
        if future is None or future.done():
            logger.debug("Late reply %s ignored", envelope.correlation_id)
            return
        try:
            future.set_result(Reply.model_validate(envelope.payload))
        except ValidationError as exc:
            future.set_result(Reply.failure(ErrorCode.INTERNAL, str(exc)))

    async def _drain(self) -> None:
        assert self._inbox is not None
        while True:
            envelope = await self._inbox.get()
            reply = await self._dispatch(envelope)
            if envelope.correlation_id and envelope.reply_to:
                await self._reply(envelope, reply)

    async def _dispatch(self, envelope: Envelope) -> Reply:
        try:
            message = envelope.decode()
        except (ValueError, ValidationError) as exc:
            logger.warning("Undecodable %s from %s: %s", envelope.kind, envelope.sender, exc)
            return Reply.failure(ErrorCode.INTERNAL, f"bad {envelope.kind}: {exc}")

        handlers = self._handlers.get(envelope.kind)
        if not handlers:
            logger.debug("%s has no handler for %s", self.context, envelope.kind)
            return Reply.failure(ErrorCode.INTERNAL, f"no handler for {envelope.kind}")

        reply: Reply | None = None
        for handler in handlers:
            try:
                result = await handler(message, envelope)
            except AidetectError as exc:
                logger.info("%s failed in %s: %s", envelope.kind, self.context, exc.message)
                result = Reply.failure(exc.code, exc.message)
            except Exception as exc:
                logger.exception("Handler for %s crashed in %s", envelope.kind, self.context)
                result = Reply.failure(ErrorCode.INTERNAL, str(exc))
            if reply is None and result is not None:
                reply = result
        return reply if reply is not None else Reply()

    async def _reply(self, request: Envelope, reply: Reply) -> None:
        envelope = Envelope(
            kind=Reply.kind,
            sender=self.context,
            target=request.reply_to or request.sender,
            correlation_id=request.correlation_id,
            payload=reply.to_payload(),
        )
        await self._event_bus.publish_to_context(
            envelope.target, envelope.model_dump(mode="json")
        )
