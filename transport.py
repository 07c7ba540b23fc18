"""WebSocket transport used by the transcription session."""

from __future__ import annotations

import logging

from websockets.asyncio.client import connect

from interfaces import Connection

logger = logging.getLogger(__name__)


async def open_websocket(url: str, token: str = "", open_timeout_s: float = 5.0) -> Connection:
    """Open a WebSocket connection, attaching ``token`` as a bearer header."""
    headers = {"Authorization": f"Bearer {token}"} if token else None
    logger.debug("Opening WebSocket %s", url)
    return await connect(
        url,
        additional_headers=headers,
        open_timeout=open_timeout_s,
        close_timeout=open_timeout_s,
    )
