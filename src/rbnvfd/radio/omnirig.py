"""
OmniRig radio controller (Windows COM server).

Not implemented: connecting always fails and points at rigctld instead.
"""

import logging

from .base import ConnectionFailed, NotConnected, RadioController, RadioMode

logger = logging.getLogger(__name__)


class OmniRigController(RadioController):
    """Controller for OmniRig. Every operation reports the backend unavailable."""

    def __init__(self, rig_number: int = 1):
        self.rig_number = rig_number
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def backend_name(self) -> str:
        return "OmniRig"

    async def connect(self) -> bool:
        # TODO: COM interop with OmniRig (pywin32) for Windows hosts
        logger.warning("OmniRig rig %d requested, backend not implemented", self.rig_number)
        raise ConnectionFailed("OmniRig support not yet implemented. Please use rigctld.")

    async def disconnect(self) -> None:
        self._connected = False

    async def tune(self, frequency_khz: float, mode: RadioMode) -> bool:
        raise NotConnected()
