"""Parser for Reverse Beacon Network `DX de` spot lines."""

import math
import re

from .logging_setup import get_logger
from .models import RawSpot

logger = get_logger(__name__)

SPOT_PREFIX = "DX de "

# DX de W1AW-#:    14025.0  K1ABC   CW   15 dB   25 WPM  CQ  1234Z
SPOT_PATTERN = re.compile(
    r"DX de (\S+)\s+(\d+\.?\d*)\s+(\S+)\s+(\w+)\s+(\d+)\s+dB\s+(\d+)\s+WPM"
)

SPOTTER_SUFFIX_CHARS = "-#:"


def parse_spot_line(line: str) -> RawSpot | None:
    """Parse one feed line into a RawSpot.

    Returns None for anything that is not a well-formed spot. Misses are
    expected on a busy feed and are never reported as errors.
    """
    if not line.startswith(SPOT_PREFIX):
        return None

    match = SPOT_PATTERN.match(line)
    if not match:
        logger.debug("Unparsed spot line: %s", line.rstrip())
        return None

    spotter, freq, callsign, mode, snr, speed = match.groups()
    frequency_khz = float(freq)
    if not math.isfinite(frequency_khz):
        logger.debug("Spot line with out of range frequency: %s", line.rstrip())
        return None

    return RawSpot(
        spotter=spotter.rstrip(SPOTTER_SUFFIX_CHARS),
        callsign=callsign,
        frequency_khz=frequency_khz,
        snr_db=int(snr),
        speed_wpm=int(speed),
        mode=mode,
    )
