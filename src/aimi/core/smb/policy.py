"""
Micro-bolus sizing.

The proposed correction is shrunk by every attenuator in turn (PK/PD tail
damping, absorption guard or throttle, context intents, trajectory
modulation), then checked against the widened hypo margin, optionally lifted
by the high-BG override and finally quantized to the pump step.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from aimi.api.types import ReasonEntry, TickInput
from aimi.core.context.influence import ContextInfluence
from aimi.core.pkpd.absorption_guard import AbsorptionGuard, GuardResult
from aimi.core.pkpd.damping import DampingAudit, SmbDamping
from aimi.core.pkpd.runtime import PkPdRuntime
from aimi.core.pkpd.throttle import NORMAL, Throttle, compute_throttle
from aimi.core.safety.config import SafetyConfig
from aimi.core.safety.high_bg_override import apply_high_bg_override, is_below_hypo_guard
from aimi.core.smb.quantizer import quantize_to_pump_step
from aimi.core.trajectory.models import NEUTRAL_MODULATION, TrajectoryModulation

logger = logging.getLogger("aimi.smb")

BASAL_PREFERENCE_THRESHOLD = 0.7


@dataclass
class SmbOutcome:
    bolus: float
    interval_minutes: float
    prefer_basal: bool
    proposed: float
    reasons: List[ReasonEntry] = field(default_factory=list)
    audit: Optional[DampingAudit] = None
    guard: Optional[GuardResult] = None
    throttle: Optional[Throttle] = None
    override_used: bool = False

    def _add(self, reason: str, value: float, clinical_impact: str = "") -> None:
        self.reasons.append(ReasonEntry(reason, "smb", round(value, 3), clinical_impact))


class SmbPolicy:

    def __init__(self, damping: Optional[SmbDamping] = None, safety_config: Optional[SafetyConfig] = None):
        self.damping = damping or SmbDamping()
        self.config = safety_config or SafetyConfig()

    def propose(self, tick: TickInput, fused_isf: float) -> float:
        """Correction toward target net of IOB, scaled by the SMB ratio and capped."""
        profile = tick.profile
        if fused_isf <= 0:
            return 0.0
        iob = tick.insulin.iob
        needed = (tick.eventual - profile.target_bg) / fused_isf - iob
        proposed = max(0.0, needed) * self.config.smb_ratio
        headroom = max(0.0, profile.max_iob - iob)
        return min(proposed, profile.max_smb, headroom)

    def evaluate(self,
                 tick: TickInput,
                 fused_isf: float,
                 lgs: float,
                 runtime: Optional[PkPdRuntime] = None,
                 context: Optional[ContextInfluence] = None,
                 modulation: TrajectoryModulation = NEUTRAL_MODULATION,
                 hypo_zero: bool = False) -> SmbOutcome:
        cfg = self.config
        profile = tick.profile
        glucose = tick.glucose
        modes = tick.modes
        bg = glucose.value

        proposed = self.propose(tick, fused_isf)
        out = SmbOutcome(
            bolus=proposed,
            interval_minutes=cfg.base_smb_interval,
            prefer_basal=False,
            proposed=proposed,
        )
        if proposed > 0:
            out._add(f"Proposed SMB {proposed:.2f}U (eventual {tick.eventual:.0f}, ISF {fused_isf:.1f})", proposed)

        if hypo_zero:
            out.bolus = 0.0
            out._add("SMB suppressed: hypo protection active", 0.0, "suspend")
            return out

        meal_mode = modes.any_meal_window or modes.forced_meal_active
        extra_interval = 0.0

        tail_fraction = runtime.tail_fraction if runtime is not None else 0.0
        activity = runtime.activity if runtime is not None else None
        audit = self.damping.damp_with_audit(
            out.bolus,
            tail_fraction,
            modes.exercise,
            modes.late_fat_meal_suspected,
            bypass=meal_mode or modes.high_bg_rise_active,
            activity=activity,
        )
        out.audit = audit
        if audit.out < out.bolus:
            out._add(f"PK/PD damping x{audit.total_factor:.2f}", audit.out)
        out.bolus = audit.out

        guard = AbsorptionGuard.compute(
            runtime, bg, glucose.delta, glucose.short_delta, profile.target_bg, tick.predicted, meal_mode,
        )
        throttle = NORMAL
        if activity is not None:
            throttle = compute_throttle(activity, tail_fraction, glucose.delta, profile.target_bg, bg)
        out.guard, out.throttle = guard, throttle
        if guard.is_urgency_relaxed:
            # a relaxed guard outranks the activity throttle
            factor, label = guard.factor, guard.reason
            extra_interval = max(extra_interval, guard.interval_add)
            out.prefer_basal = out.prefer_basal or guard.prefer_basal
        else:
            factor = min(guard.factor, throttle.smb_factor)
            label = guard.reason if guard.factor <= throttle.smb_factor else throttle.reason
            extra_interval = max(extra_interval, guard.interval_add, throttle.interval_add)
            out.prefer_basal = out.prefer_basal or guard.prefer_basal or throttle.prefer_basal
        if factor < 1.0:
            out.bolus *= factor
            out._add(f"Absorption throttle x{factor:.2f} ({label})", out.bolus)

        if context is not None and not context.is_neutral:
            out.bolus *= context.smb_factor
            extra_interval = max(extra_interval, context.extra_interval)
            out.prefer_basal = out.prefer_basal or context.prefer_basal
            out.reasons.append(ReasonEntry(
                f"Context x{context.smb_factor:.2f}: " + "; ".join(context.reasoning),
                "context", round(out.bolus, 3),
            ))

        if modulation.is_significant():
            out.bolus *= modulation.smb_damping
            out.prefer_basal = out.prefer_basal or modulation.basal_preference > BASAL_PREFERENCE_THRESHOLD
            out.reasons.append(ReasonEntry(
                f"Trajectory x{modulation.smb_damping:.2f}: {modulation.reason}",
                "trajectory", round(out.bolus, 3),
            ))

        hypo_guard = lgs * modulation.safety_margin_expand
        if out.bolus > 0 and is_below_hypo_guard(bg, tick.predicted, tick.eventual, hypo_guard):
            out.bolus = 0.0
            out._add(f"SMB zeroed: min BG forecast <= hypo guard {hypo_guard:.0f}", 0.0, "suspend")

        override = apply_high_bg_override(
            bg=bg,
            delta=glucose.delta,
            predicted=tick.predicted,
            eventual=tick.eventual,
            hypo_guard=hypo_guard,
            iob=tick.insulin.iob,
            max_smb=profile.max_smb,
            current_dose=out.bolus,
            pump_step=profile.pump.bolus_step,
            config=cfg,
        )
        if override.override_used:
            out.override_used = True
            if override.dose > out.bolus:
                out._add(f"High-BG override: {override.dose:.2f}U", override.dose)
            out.bolus = override.dose

        cap = min(profile.max_smb, max(0.0, profile.max_iob - tick.insulin.iob))
        out.bolus = quantize_to_pump_step(min(out.bolus, cap), profile.pump.bolus_step, cap)

        if out.override_used:
            out.interval_minutes = 0.0
        else:
            out.interval_minutes = (cfg.base_smb_interval + extra_interval) * modulation.interval_stretch

        logger.debug(
            "SMB proposed=%.2f final=%.2f interval=%.1f prefer_basal=%s",
            proposed, out.bolus, out.interval_minutes, out.prefer_basal,
        )
        return out
