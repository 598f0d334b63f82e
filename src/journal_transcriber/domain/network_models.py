from __future__ import annotations

"""
Network Domain Models.

Ordinal classification of network usability as measured by the quality probe.
"""

from enum import Enum


class NetworkQuality(Enum):
    """Usability tiers, ordered from worst to best."""
    UNKNOWN = 0
    POOR = 1
    FAIR = 2
    GOOD = 3
    EXCELLENT = 4

    @property
    def usable_for_transcription(self) -> bool:
        """Large uploads are only attempted on fair or better links."""
        return self in (NetworkQuality.FAIR, NetworkQuality.GOOD, NetworkQuality.EXCELLENT)

    @property
    def label(self) -> str:
        return self.name.capitalize()

    def __str__(self) -> str:
        return self.label
