"""
Disabled radio controller - No-op stub implementation.

Used when no rig control is configured; spots are shown but never tuned.
"""

import logging

from .base import RadioController, RadioMode

logger = logging.getLogger(__name__)


class DisabledController(RadioController):
    """Disabled radio controller - all operations are no-ops."""

    @property
    def is_connected(self) -> bool:
        """Always returns False"""
        return False

    @property
    def backend_name(self) -> str:
        return "disabled"

    async def connect(self) -> bool:
        """No-op connect - always returns False"""
        logger.info("Radio control disabled - connect skipped")
        return False

    async def disconnect(self) -> None:
        """No-op disconnect"""
        logger.debug("Radio control disabled - disconnect skipped")

    async def tune(self, frequency_khz: float, mode: RadioMode) -> bool:
        """No-op tune - always returns False"""
        logger.info("Radio control disabled - tune to %.1f kHz %s skipped", frequency_khz, mode.value)
        return False
