"""
Context intents to SMB modulation.

Intents arrive already parsed (category, intensity, time window). Each active
category contributes an SMB factor, an extra SMB interval and a basal
preference; contributions compose by multiplying factors, taking the largest
interval and OR-ing the basal preference.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from aimi.api.types import ContextIntent, Intensity

logger = logging.getLogger("aimi.context")

MIN_SMB_FACTOR = 0.5
MAX_SMB_FACTOR = 1.1
MAX_EXTRA_INTERVAL = 10


class ContextMode(Enum):
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"


@dataclass
class ContextInfluence:
    smb_factor: float = 1.0
    extra_interval: int = 0
    prefer_basal: bool = False
    reasoning: List[str] = field(default_factory=list)

    @property
    def is_neutral(self) -> bool:
        return self.smb_factor == 1.0 and self.extra_interval == 0 and not self.prefer_basal


def _max_intensity(intents: Sequence[ContextIntent]) -> Intensity:
    return max(intent.intensity for intent in intents)


class ContextInfluenceEngine:

    def __init__(self, mode: ContextMode = ContextMode.BALANCED):
        self.mode = mode

    def compute(self,
                intents: Sequence[ContextIntent],
                now: float,
                bg: float,
                iob: float,
                mode: Optional[ContextMode] = None) -> ContextInfluence:
        mode = mode or self.mode
        active = [intent for intent in intents if intent.is_active(now)]
        if not active:
            return ContextInfluence()

        by_category: Dict[str, List[ContextIntent]] = {}
        for intent in active:
            by_category.setdefault(intent.category, []).append(intent)

        contributions: List[ContextInfluence] = []
        if "activity" in by_category:
            contributions.append(self._activity(by_category["activity"], bg, iob, mode))
        if "illness" in by_category:
            contributions.append(self._illness(by_category["illness"], bg))
        if "stress" in by_category:
            contributions.append(self._stress(by_category["stress"], bg))
        if "alcohol" in by_category:
            contributions.append(self._alcohol(by_category["alcohol"], bg, iob))
        if "meal_risk" in by_category:
            contributions.append(self._meal_risk(by_category["meal_risk"]))

        unknown = sorted(set(by_category) - {"activity", "illness", "stress", "alcohol", "meal_risk"})
        for category in unknown:
            logger.debug("Context: ignoring unknown intent category %s", category)

        return self._compose(contributions)

    @staticmethod
    def _activity(intents: Sequence[ContextIntent], bg: float, iob: float, mode: ContextMode) -> ContextInfluence:
        intensity = _max_intensity(intents)
        table = {
            Intensity.EXTREME: (0.60, 8, True),
            Intensity.HIGH: (0.75, 5, True),
            Intensity.MEDIUM: (0.85, 3, True),
            Intensity.LOW: (0.92, 1, False),
        }
        factor, interval, prefer_basal = table[intensity]
        reasons = [f"Activity {intensity.name}: SMB x{factor:.2f}, +{interval}m"]

        if bg < 90:
            factor *= 0.85
            reasons.append("Activity with BG < 90: extra reduction")
        elif bg < 110 and iob > 2.0:
            factor *= 0.90
            reasons.append("Activity with IOB > 2U and BG < 110: extra reduction")
        factor = max(0.5, factor)

        if mode == ContextMode.CONSERVATIVE:
            factor = max(0.5, factor * 0.95)
        elif mode == ContextMode.AGGRESSIVE:
            factor = min(1.1, factor / 0.95)
        return ContextInfluence(factor, interval, prefer_basal, reasons)

    @staticmethod
    def _illness(intents: Sequence[ContextIntent], bg: float) -> ContextInfluence:
        intensity = _max_intensity(intents)
        if bg > 160 and intensity >= Intensity.MEDIUM:
            return ContextInfluence(1.05, 1, False, [f"Illness {intensity.name} with BG > 160: SMB x1.05"])
        if bg > 130:
            return ContextInfluence(1.0, 2, False, [f"Illness {intensity.name}: cautious cadence"])
        return ContextInfluence(0.95, 3, False, [f"Illness {intensity.name} with normal BG: SMB x0.95"])

    @staticmethod
    def _stress(intents: Sequence[ContextIntent], bg: float) -> ContextInfluence:
        intensity = _max_intensity(intents)
        if intensity >= Intensity.HIGH:
            if bg > 150:
                return ContextInfluence(1.03, 1, False, [f"Stress {intensity.name} with BG > 150: SMB x1.03"])
            return ContextInfluence(0.98, 2, False, [f"Stress {intensity.name}: SMB x0.98"])
        if intensity == Intensity.MEDIUM:
            return ContextInfluence(0.98, 1, False, ["Stress MEDIUM: SMB x0.98"])
        return ContextInfluence(0.99, 0, False, ["Stress LOW: SMB x0.99"])

    @staticmethod
    def _alcohol(intents: Sequence[ContextIntent], bg: float, iob: float) -> ContextInfluence:
        intensity = _max_intensity(intents)
        table = {
            Intensity.EXTREME: (0.50, 10),
            Intensity.HIGH: (0.65, 7),
            Intensity.MEDIUM: (0.75, 5),
            Intensity.LOW: (0.85, 3),
        }
        factor, interval = table[intensity]
        reasons = [f"Alcohol {intensity.name}: SMB x{factor:.2f}, +{interval}m (delayed hypo risk)"]
        if iob > 3.0:
            factor *= 0.9
            reasons.append("Alcohol with IOB > 3U: extra reduction")
        elif bg < 110:
            factor *= 0.85
            reasons.append("Alcohol with BG < 110: extra reduction")
        return ContextInfluence(max(0.5, factor), interval, True, reasons)

    @staticmethod
    def _meal_risk(intents: Sequence[ContextIntent]) -> ContextInfluence:
        intensity = _max_intensity(intents)
        interval = {Intensity.EXTREME: 4, Intensity.HIGH: 4, Intensity.MEDIUM: 2, Intensity.LOW: 1}[intensity]
        return ContextInfluence(1.0, interval, False, [f"Meal risk {intensity.name}: +{interval}m"])

    @staticmethod
    def _compose(contributions: Sequence[ContextInfluence]) -> ContextInfluence:
        factor = 1.0
        interval = 0
        prefer_basal = False
        reasoning: List[str] = []
        for item in contributions:
            factor *= item.smb_factor
            interval = max(interval, item.extra_interval)
            prefer_basal = prefer_basal or item.prefer_basal
            reasoning.extend(item.reasoning)

        clamped = min(MAX_SMB_FACTOR, max(MIN_SMB_FACTOR, factor))
        if clamped != factor:
            reasoning.append(f"SMB factor clamped: {factor:.2f} -> {clamped:.2f} (safety bounds)")
        return ContextInfluence(
            smb_factor=clamped,
            extra_interval=min(MAX_EXTRA_INTERVAL, max(0, interval)),
            prefer_basal=prefer_basal,
            reasoning=reasoning,
        )
