from __future__ import annotations

import logging
import mimetypes
from typing import Any

from objstore.common.config import Settings, get_settings
from objstore.infra.storage.client import Operation, StorageGateway

DEFAULT_CONTENT_TYPE = "application/octet-stream"

logger = logging.getLogger("storage")


def content_type_for(key: str) -> str:
    """Guess a MIME type from the key's extension."""
    guessed, _ = mimetypes.guess_type(key)
    return guessed or DEFAULT_CONTENT_TYPE


class BaseService:
    """Provides the gateway handle and helpers shared by storage services."""

    def __init__(self, gateway: StorageGateway, *, settings: Settings | None = None):
        self._gateway = gateway
        self._settings = settings or get_settings()

    @property
    def gateway(self) -> StorageGateway:
        return self._gateway

    @property
    def settings(self) -> Settings:
        return self._settings

    async def _send(self, name: str, **params: Any) -> dict[str, Any]:
        return await self._gateway.send(Operation(name, params))

    def _log(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        rendered = " ".join(f"{key}={value}" for key, value in fields.items())
        logger.log(
            level,
            "%s %s",
            event,
            rendered,
            extra={"extra": {"event": event, **fields}},
        )
