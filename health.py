"""Daemon health check."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT_S = 3.0


async def check_daemon_health(
    api_url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout_s: float = HEALTH_TIMEOUT_S,
) -> tuple[bool, str]:
    """Check whether the daemon reports ``{"status": "healthy"}``."""
    url = f"{api_url.rstrip('/')}/health"
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout_s)
    try:
        resp = await http.get(url, timeout=timeout_s)
        if resp.status_code != 200:
            return False, f"Daemon returned status {resp.status_code}"
        body = resp.json()
        status = body.get("status") if isinstance(body, dict) else None
        if status == "healthy":
            return True, "Daemon ready"
        return False, f"Daemon status is {status!r}"
    except httpx.TimeoutException:
        logger.warning("Health check timed out after %.1fs: %s", timeout_s, url)
        return False, "Daemon health check timed out"
    except Exception as e:
        logger.warning("Daemon not available: %s", e)
        return False, f"Daemon not available: {e}"
    finally:
        if owns_client:
            await http.aclose()
