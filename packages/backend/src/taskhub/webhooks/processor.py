"""Webhook processor — event type → registered handler.

Learn: One handler per event type, last registration wins. Handlers have
the signature `(payload, metadata) -> result` and may be plain functions
or coroutines. A handler that raises (or returns an exception instance)
becomes a HandlerError; the original error is logged with its traceback
and never sent back to the webhook sender.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Union

import structlog

from taskhub.errors import HandlerError

logger = structlog.get_logger()

WebhookHandler = Callable[[Any, Any], Union[Any, Awaitable[Any]]]


@dataclass
class ProcessResult:
    event_type: str
    handled: bool
    result: Any = None


class WebhookProcessor:
    def __init__(self):
        self._handlers: dict[str, WebhookHandler] = {}

    def register_handler(self, event_type: str, handler: WebhookHandler) -> None:
        if not callable(handler):
            raise TypeError("Handler must be callable")
        if event_type in self._handlers:
            logger.info("webhook.handler_replaced", event_type=event_type)
        # Single assignment: readers see either the old or the new handler.
        self._handlers[event_type] = handler
        logger.debug("webhook.handler_registered", event_type=event_type)

    def register_handlers(self, handlers: Mapping[str, WebhookHandler]) -> None:
        for event_type, handler in handlers.items():
            self.register_handler(event_type, handler)

    def remove_handler(self, event_type: str) -> None:
        self._handlers.pop(event_type, None)
        logger.debug("webhook.handler_removed", event_type=event_type)

    def has_handler(self, event_type: str) -> bool:
        return event_type in self._handlers

    def registered_event_types(self) -> list[str]:
        return list(self._handlers)

    async def process(self, event_type: str, payload: Any, metadata: Any) -> ProcessResult:
        source = getattr(metadata, "source", None)
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.warning(
                "webhook.unhandled",
                event_type=event_type,
                source=source,
                available_handlers=self.registered_event_types(),
            )
            return ProcessResult(event_type=event_type, handled=False)

        logger.info("webhook.processing", event_type=event_type, source=source)
        try:
            result = handler(payload, metadata)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(
                "webhook.handler_failed",
                event_type=event_type,
                source=source,
                error_type=type(e).__name__,
                exc_info=True,
            )
            raise HandlerError(event_type, e) from e

        if isinstance(result, BaseException):
            logger.error(
                "webhook.handler_failed",
                event_type=event_type,
                source=source,
                error_type=type(result).__name__,
                error=str(result),
            )
            raise HandlerError(event_type, result)

        return ProcessResult(event_type=event_type, handled=True, result=result)
