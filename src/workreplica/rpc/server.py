"""Request/response + push multiplexing over a single duplex channel.

Wire shapes:
    request:  [correlation_id, route, payload]
    response: [correlation_id, route, response]
    push:     [None, topic, payload]
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from workreplica.logging_config import get_logger
from workreplica.models import ErrorResponse

logger = get_logger(__name__)

Message = list[Any]
Transport = Callable[[Message], "Awaitable[None] | None"]
Handler = Callable[[Any], Awaitable[Any]]


def to_wire(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


class RpcServer:
    def __init__(self, send: Transport) -> None:
        self._send = send
        self._handlers: dict[str, tuple[Handler, type[BaseModel] | None]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def routes(self) -> list[str]:
        return sorted(self._handlers)

    def add_request_handler(
        self,
        route: str,
        handler: Handler,
        request_model: type[BaseModel] | None = None,
    ) -> None:
        self._handlers[route] = (handler, request_model)

    async def _deliver(self, message: Message) -> None:
        result = self._send(message)
        if inspect.isawaitable(result):
            await result

    async def emit(self, topic: str, payload: Any) -> None:
        await self._deliver([None, topic, to_wire(payload)])

    async def handle_message(self, message: Message) -> Message:
        """Dispatch one request and return the response message."""
        correlation_id, route, payload = message
        entry = self._handlers.get(route)
        if entry is None:
            logger.warning("unhandled route", route=route)
            error = ErrorResponse(error=f"Unhandled route {route}")
            return [correlation_id, route, to_wire(error)]

        handler, request_model = entry
        started = time.perf_counter()
        try:
            request = (
                request_model.model_validate(payload or {})
                if request_model is not None
                else payload
            )
            response = await handler(request)
        except ValidationError as e:
            logger.warning("invalid request", route=route, error=str(e))
            response = ErrorResponse(error=f"Invalid request: {e}")
        except Exception as e:
            logger.exception("request handler failed", route=route)
            response = ErrorResponse(error=str(e) or "Unknown error")

        logger.debug(
            "handled request",
            id=correlation_id,
            route=route,
            ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return [correlation_id, route, to_wire(response)]

    async def _respond(self, message: Message) -> None:
        await self._deliver(await self.handle_message(message))

    async def serve(self, inbox: asyncio.Queue[Message | None]) -> None:
        """Consume requests until a None sentinel arrives.

        Requests are handled concurrently; pending ones finish before
        serve() returns.
        """
        while True:
            message = await inbox.get()
            if message is None:
                break
            task = asyncio.create_task(self._respond(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
