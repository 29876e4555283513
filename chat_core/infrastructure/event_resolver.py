# chat_core/infrastructure/event_resolver.py
import logging

import httpx

from chat_core.domain.errors import NotFoundError, TransientError, ValidationError


class OpaqueEventResolver:
    """Accepts any non-empty event id without consulting the events service."""

    async def resolve(self, event_id: str) -> str:
        if not event_id or not event_id.strip():
            raise ValidationError("eventId is required for event-share messages")
        return event_id.strip()

    async def aclose(self) -> None:
        return None


class HttpEventResolver(OpaqueEventResolver):
    """Checks shared event ids against the external events API.

    ``GET {base_url}/{event_id}``: 2xx accepts the reference, 404 rejects it,
    anything else is treated as the events service being unavailable.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float,
        logger: logging.Logger,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.logger = logger
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout, transport=transport
        )

    async def resolve(self, event_id: str) -> str:
        event_id = await super().resolve(event_id)
        try:
            response = await self.client.get(f"/{event_id}")
        except httpx.HTTPError as e:
            self.logger.warning(f"Events service unreachable for {event_id}: {e!s}")
            raise TransientError("Events service is unavailable")

        if response.status_code == 404:
            raise NotFoundError(f"Event {event_id} not found")
        if response.status_code >= 400:
            self.logger.warning(
                f"Events service answered {response.status_code} for {event_id}"
            )
            raise TransientError("Events service is unavailable")
        return event_id

    async def aclose(self) -> None:
        await self.client.aclose()
