"""
Release update check.

Best effort: any failure is logged at debug level and the run carries on.
"""

from __future__ import annotations

import asyncio
import re

import aiohttp

from imageshrink.core.config import UpdateConfig
from imageshrink.core.logging import get_logger

logger = get_logger(__name__)


def version_key(version: str) -> tuple[int, ...]:
    """Numeric sort key for tags like ``v24.10.23``."""
    return tuple(int(part) for part in re.findall(r"\d+", version))


async def _request_release(url: str, timeout: float) -> object:
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(timeout=client_timeout) as session:
        async with session.get(url, headers={"Accept": "application/json"}) as resp:
            resp.raise_for_status()
            # Release APIs do not always label their JSON correctly.
            return await resp.json(content_type=None)


def fetch_latest_release(url: str, timeout: float) -> str | None:
    """Fetch the latest release tag from a releases API endpoint."""
    try:
        data = asyncio.run(_request_release(url, timeout))
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
        logger.debug("Update check failed", url=url, error=repr(e))
        return None

    tag = data.get("tag_name") if isinstance(data, dict) else None
    if not tag:
        logger.debug("Update check returned no tag", url=url)
        return None
    return str(tag)


def check_for_update(config: UpdateConfig, current_version: str) -> str | None:
    """Return the newer release tag if one exists, else ``None``."""
    if not config.enabled or not config.url:
        return None

    latest = fetch_latest_release(config.url, config.timeout_seconds)
    if latest is None:
        return None

    if version_key(latest) > version_key(current_version):
        return latest
    return None
