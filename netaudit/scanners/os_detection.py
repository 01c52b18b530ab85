"""
OS Detection Module
Aggregates per-port banner OS hints into one fingerprint per host
"""

import logging
from typing import Dict, Iterable, Optional

from netaudit.core.models import OSFingerprint, ServiceBanner

logger = logging.getLogger(__name__)

HINT_WEIGHT = 30


class OSDetector:
    """Weighted vote over the OS guesses of a host's banners"""

    def __init__(self, hint_weight: int = HINT_WEIGHT):
        self.hint_weight = hint_weight

    def fingerprint(self, host: str, banners: Iterable[ServiceBanner]) -> Optional[OSFingerprint]:
        tallies: Dict[str, int] = {}
        total = 0
        ports = 0

        for banner in banners:
            ports += 1
            if banner.operating_system_guess:
                tallies[banner.operating_system_guess] = tallies.get(banner.operating_system_guess, 0) + self.hint_weight
                total += self.hint_weight

        if not tallies:
            return None

        # max() keeps the first OS seen on ties
        detected_os = max(tallies, key=tallies.get)
        confidence = min(100, tallies[detected_os] * 100 // max(total, 1))

        logger.debug(f"OS fingerprint {host}: {detected_os} ({confidence}%) from {tallies}")
        return OSFingerprint(
            host=host,
            detected_os=detected_os,
            confidence=confidence,
            details=f"Detected from service banners on {ports} ports",
        )
