"""Radio control sub-package for rbnvfd."""

import logging

from .base import (
    CommandFailed,
    ConnectionFailed,
    NotConnected,
    RadioBackend,
    RadioController,
    RadioError,
    RadioMode,
)

logger = logging.getLogger(__name__)


def create_radio_controller(
    backend: RadioBackend | str = RadioBackend.DISABLED,
    # rigctld options
    rigctld_host: str = "127.0.0.1",
    rigctld_port: int = 4532,
    # OmniRig options
    omnirig_rig: int = 1,
) -> RadioController:
    """
    Factory function to create the radio controller for a backend.

    Raises:
        ValueError: unknown backend name
    """
    backend = RadioBackend(backend)

    if backend == RadioBackend.RIGCTLD:
        from .rigctld import RigctldController
        controller = RigctldController(host=rigctld_host, port=rigctld_port)
        logger.info("Created rigctld radio controller -> %s:%d", rigctld_host, rigctld_port)

    elif backend == RadioBackend.OMNIRIG:
        from .omnirig import OmniRigController
        controller = OmniRigController(rig_number=omnirig_rig)
        logger.info("Created OmniRig radio controller (rig %d)", omnirig_rig)

    else:  # DISABLED
        from .disabled import DisabledController
        controller = DisabledController()
        logger.info("Created disabled radio controller (no-op)")

    return controller


__all__ = [
    "CommandFailed",
    "ConnectionFailed",
    "NotConnected",
    "RadioBackend",
    "RadioController",
    "RadioError",
    "RadioMode",
    "create_radio_controller",
]
