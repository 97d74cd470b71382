"""
Radio controller abstraction layer.

Backends:
- rigctld: Hamlib network daemon (TCP, line protocol)
- omnirig: Windows OmniRig COM server (stub, not implemented)
- disabled: No-op stub
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum

logger = logging.getLogger(__name__)

DIGITAL_MODES = ("FT8", "FT4", "PSK", "JT", "MSK", "BPSK", "Q65", "WSPR")


class RadioBackend(Enum):
    """Radio control backends"""
    RIGCTLD = "rigctld"
    OMNIRIG = "omnirig"
    DISABLED = "disabled"


class RadioMode(Enum):
    """Operating modes a spot can be tuned to (rigctld mode names)."""
    CW = "CW"
    USB = "USB"
    LSB = "LSB"
    RTTY = "RTTY"
    DATA = "PKTUSB"

    @classmethod
    def from_spot_mode(cls, mode: str, frequency_khz: float) -> "RadioMode":
        """Map a spot's mode token to a rig mode.

        Voice/unknown modes follow the sideband convention: USB from 10 MHz up,
        LSB below.
        """
        token = mode.strip().upper()
        if token == "CW":
            return cls.CW
        if token == "RTTY":
            return cls.RTTY
        if token.startswith(DIGITAL_MODES):
            return cls.DATA
        if token in ("USB", "LSB"):
            return cls(token)
        return cls.USB if frequency_khz >= 10_000 else cls.LSB


class RadioError(Exception):
    """Base class for radio control failures."""


class ConnectionFailed(RadioError):
    """The backend could not be reached."""


class NotConnected(RadioError):
    """An operation needs a connected backend."""

    def __init__(self, message: str = "Radio not connected"):
        super().__init__(message)


class CommandFailed(RadioError):
    """The backend rejected a command."""


class RadioController(ABC):
    """
    Abstract base class for radio controllers.

    All rig operations go through this interface, allowing different
    backends to be swapped transparently.
    """

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if connected to the rig backend"""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Human readable backend name"""

    @abstractmethod
    async def connect(self) -> bool:
        """
        Connect to the rig backend.

        Returns:
            True if connection successful

        Raises:
            ConnectionFailed: backend unreachable or unsupported
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Drop the connection to the rig backend."""

    @abstractmethod
    async def tune(self, frequency_khz: float, mode: RadioMode) -> bool:
        """
        Tune the rig to a frequency and mode.

        Args:
            frequency_khz: Target frequency in kHz
            mode: Operating mode

        Returns:
            True if the rig accepted the command

        Raises:
            NotConnected: backend not connected
            CommandFailed: backend rejected the command
        """
