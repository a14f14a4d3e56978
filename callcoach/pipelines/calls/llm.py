"""Text-model invocation shared by the analysis and coaching stages."""

from __future__ import annotations

import logging
from typing import Optional

from callcoach.services.providers import ProviderError, ProviderGateway, RawResponse
from callcoach.services.text_heuristics import truncate

logger = logging.getLogger("callcoach.pipeline")


async def generate_or_none(
    gateway: ProviderGateway,
    prompt: str,
    task: str,
) -> Optional[RawResponse]:
    """Ask the gateway for text; a provider failure yields None so the caller degrades."""

    try:
        raw = await gateway.generate_text(prompt, task)
    except ProviderError as exc:
        logger.warning("Provider %s could not generate %s: %s", gateway.name, task, exc)
        return None

    if isinstance(raw, str):
        logger.info("Raw %s reply from %s: %s", task, gateway.name, truncate(raw))
    else:
        logger.info("Structured %s reply from %s", task, gateway.name)
    return raw


__all__ = ["generate_or_none"]
