"""
Helpers shared by the outbound integrations (geocoding, moderation, routing)
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OnUnavailable(str, Enum):
    """What an integration does when its upstream service cannot answer"""

    ALLOW = "allow"
    DENY = "deny"


def parse_policy(value: str, default: OnUnavailable = OnUnavailable.ALLOW) -> OnUnavailable:
    try:
        return OnUnavailable((value or "").strip().lower())
    except ValueError:
        logger.warning(f"Unknown unavailability policy '{value}', using '{default.value}'")
        return default


class IntegrationUnavailable(Exception):
    """Raised when an upstream service fails, times out or is not configured"""

    def __init__(self, integration: str, reason: str):
        self.integration = integration
        self.reason = reason
        super().__init__(f"{integration} unavailable: {reason}")


async def run_with_timeout(awaitable: Awaitable[T], seconds: float, integration: str) -> T:
    """Race an outbound call against a timer"""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        logger.warning(f"{integration} timed out after {seconds}s")
        raise IntegrationUnavailable(integration, f"timed out after {seconds}s") from e
