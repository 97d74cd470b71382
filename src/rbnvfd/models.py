"""Spot data models.

- RawSpot: one parsed line from the spotting feed, never stored
- AggregatedSpot: merged view of all reports for one (callsign, kHz) bucket
- MergePolicy: how descriptive fields (mode, speed) follow new reports
"""

import math
from dataclasses import dataclass
from enum import Enum


class MergePolicy(Enum):
    """Which report the descriptive fields of a merged spot come from."""

    LATEST = "latest"        # most recent report wins
    STRONGEST = "strongest"  # report with the highest SNR so far wins


@dataclass(frozen=True)
class RawSpot:
    """A single skimmer report parsed from a `DX de` line."""

    spotter: str
    callsign: str
    frequency_khz: float
    snr_db: int
    speed_wpm: int
    mode: str


def frequency_bucket(frequency_khz: float) -> int:
    """Round a frequency to the nearest whole kHz, halves round up."""
    return int(math.floor(frequency_khz + 0.5))


def spot_key(callsign: str, frequency_khz: float) -> tuple[str, int]:
    """Aggregation key of a spot."""
    return callsign, frequency_bucket(frequency_khz)


@dataclass
class AggregatedSpot:
    """Merged record for one spotted station on one frequency bucket.

    `frequency_khz` keeps the exact frequency of the first report.
    Timestamps come from the owning store's clock (monotonic seconds).
    """

    callsign: str
    frequency_khz: float
    highest_snr: int
    speed_wpm: int
    mode: str
    spotter: str
    first_spotted: float
    last_spotted: float
    spot_count: int = 1

    @classmethod
    def from_raw(cls, raw: RawSpot, now: float) -> "AggregatedSpot":
        return cls(
            callsign=raw.callsign,
            frequency_khz=raw.frequency_khz,
            highest_snr=raw.snr_db,
            speed_wpm=raw.speed_wpm,
            mode=raw.mode,
            spotter=raw.spotter,
            first_spotted=now,
            last_spotted=now,
        )

    @property
    def key(self) -> tuple[str, int]:
        return spot_key(self.callsign, self.frequency_khz)

    def update(self, raw: RawSpot, now: float, policy: MergePolicy = MergePolicy.LATEST) -> None:
        """Merge another report into this record.

        SNR is max-wins, the timestamp always moves to `now`. Mode and speed
        follow `policy`. The displayed frequency never changes.
        """
        if policy is MergePolicy.LATEST or raw.snr_db >= self.highest_snr:
            self.mode = raw.mode
            self.speed_wpm = raw.speed_wpm
        self.highest_snr = max(self.highest_snr, raw.snr_db)
        self.spotter = raw.spotter
        self.last_spotted = now
        self.spot_count += 1

    def age_seconds(self, now: float) -> float:
        return max(0.0, now - self.last_spotted)

    def to_dict(self, now: float) -> dict:
        """JSON-friendly view for the display API."""
        age = self.age_seconds(now)
        return {
            "callsign": self.callsign,
            "frequency_khz": self.frequency_khz,
            "highest_snr": self.highest_snr,
            "speed_wpm": self.speed_wpm,
            "mode": self.mode,
            "spotter": self.spotter,
            "spot_count": self.spot_count,
            "age_seconds": round(age, 1),
            "age": format_age(age),
        }


def format_age(seconds: float) -> str:
    """Format an age in seconds as mm:ss."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"
