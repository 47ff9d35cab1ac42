"""
Tick orchestrator.

One call to :meth:`AimiController.tick` is one synchronous evaluation:

    validate -> phase-space point -> basal planner (may short-circuit)
    -> PK/PD runtime + ISF fusion -> decision engine -> trajectory guard
    -> context influence -> SMB policy -> final rate cap

Overlapping calls are skipped rather than queued. A failure in any
sub-component is logged and replaced by its neutral contribution; invalid
inputs produce a profile-basal fallback. Nothing raises past ``tick``.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from aimi.api.types import Decision, Profile, ReasonEntry, TickInput
from aimi.core.basal.engine import BasalDecisionEngine, EngineDecision, EngineInput
from aimi.core.basal.history import TempBasalHistory
from aimi.core.basal.planner import BasalPlanner
from aimi.core.basal.rates import quantize
from aimi.core.config import ControllerConfig
from aimi.core.context.influence import ContextInfluence, ContextInfluenceEngine
from aimi.core.pkpd.kernel import ActionModelParams
from aimi.core.pkpd.runtime import MealContext, PkPdIntegration, PkPdRuntime
from aimi.core.safety.input_validator import InputValidator
from aimi.core.smb.policy import SmbOutcome, SmbPolicy
from aimi.core.trajectory.guard import TrajectoryGuard
from aimi.core.trajectory.history import TrajectoryHistory
from aimi.core.trajectory.models import NEUTRAL_MODULATION, PhaseSpacePoint, StableOrbit, TrajectoryAnalysis

logger = logging.getLogger("aimi")


class AimiController:

    def __init__(self,
                 config: Optional[ControllerConfig] = None,
                 persist: Optional[Callable[[ActionModelParams], Any]] = None):
        self.config = config or ControllerConfig()
        cfg = self.config
        self.persist = persist

        self.validator = InputValidator(safety_config=cfg.safety)
        self.basal_history = TempBasalHistory()
        self.planner = BasalPlanner(self.basal_history, cfg.safety)
        self.pkpd = PkPdIntegration(
            learning=cfg.learning,
            isf_bounds=cfg.isf_bounds,
            tail_policy=cfg.tail_policy,
            initial=cfg.initial_params,
            persist=self._schedule_persist,
        )
        self.engine = BasalDecisionEngine(safety_config=cfg.safety, use_advisor=cfg.use_advisor)
        self.trajectory_history = TrajectoryHistory(cfg.trajectory_window_minutes)
        self.trajectory_guard = TrajectoryGuard()
        self.context_engine = ContextInfluenceEngine(cfg.context_mode)
        self.smb_policy = SmbPolicy(self.pkpd.damping, cfg.safety)

        self._tick_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="aimi-persist")
        self._pending: Optional[Future] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def tick(self, tick_input: TickInput) -> Optional[Decision]:
        """Evaluate one tick. Returns ``None`` when a previous tick is still running."""
        if not self._tick_lock.acquire(blocking=False):
            logger.info("Tick skipped: previous evaluation still in flight")
            return None
        try:
            try:
                return self._evaluate(tick_input)
            except Exception as exc:
                logger.exception("Tick evaluation failed, falling back to profile basal")
                return self._fallback(tick_input, f"internal error: {exc}")
        finally:
            self._tick_lock.release()

    @property
    def params(self) -> ActionModelParams:
        return self.pkpd.estimator.params

    def get_state(self) -> Dict[str, Any]:
        return {
            "estimator": self.pkpd.estimator.get_state(),
            "last_fused_isf": self.pkpd.fusion.last_isf,
            "validator": self.validator.get_state(),
        }

    def set_state(self, state: Dict[str, Any]) -> None:
        if "estimator" in state:
            self.pkpd.estimator.set_state(state["estimator"])
            self.pkpd.last_persisted = self.pkpd.estimator.params
        self.pkpd.fusion.last_isf = state.get("last_fused_isf")
        if "validator" in state:
            self.validator.set_state(state["validator"])

    def reset(self) -> None:
        """Back to initial parameters with empty histories."""
        self.pkpd.estimator.reset(self.config.initial_params)
        self.pkpd.last_persisted = self.pkpd.estimator.params
        self.pkpd.fusion.reset()
        self.validator.reset()
        self.trajectory_history.clear()
        self.basal_history.clear()

    def wait_for_persistence(self, timeout: Optional[float] = None) -> None:
        pending = self._pending
        if pending is not None:
            pending.exception(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _evaluate(self, tick: TickInput) -> Decision:
        cfg = self.config.safety
        try:
            profile = self.validator.validate_tick(tick)
        except ValueError as exc:
            logger.warning("Invalid tick input: %s", exc)
            return self._fallback(tick, str(exc))

        now = tick.now
        bg = tick.glucose.value
        lgs = cfg.lgs_for(profile.lgs_threshold)
        window_minutes = tick.insulin.minutes_since_last_dose
        if window_minutes is None:
            window_minutes = self.params.dia_minutes

        self._record_phase_point(tick, window_minutes)

        try:
            plan = self.planner.plan(tick.glucose, profile, now)
        except Exception as exc:
            logger.warning("Basal planner failed, continuing without it: %s", exc)
            plan = None

        if plan is not None:
            decision = Decision(rate=plan.rate, duration=plan.duration, short_circuited=True, rule=plan.guard)
            decision.add_reason(plan.reason, "planner", plan.rate, plan.guard)
            return self._finalize(decision, profile, now)

        runtime = self._compute_runtime(tick, profile, window_minutes)
        fused_isf = runtime.fused_isf if runtime is not None else profile.isf

        engine_decision = self._run_engine(tick, profile, fused_isf, lgs, now)
        analysis = self._analyze_trajectory(now, profile)
        context = self._context(tick, bg)
        smb = self._run_smb(tick, fused_isf, lgs, runtime, context, analysis, engine_decision.is_hypo_zero)

        decision = Decision(
            rate=engine_decision.rate,
            duration=engine_decision.duration,
            bolus=smb.bolus,
            override_safety=engine_decision.override_safety,
            reasons=list(engine_decision.reasons),
            smb_interval_minutes=smb.interval_minutes,
            prefer_basal=smb.prefer_basal,
            advisories=list(analysis.warnings) if analysis is not None else [],
            fused_isf=fused_isf,
            rule=engine_decision.rule,
        )
        decision.reasons.extend(smb.reasons)
        return self._finalize(decision, profile, now)

    def _record_phase_point(self, tick: TickInput, window_minutes: float) -> None:
        try:
            estimator = self.pkpd.estimator
            activity = sum(
                dose.amount * estimator.action_at(dose.elapsed_minutes) * 60.0 for dose in tick.insulin.doses
            )
            stage = estimator.activity_state_at(window_minutes).stage
            self.trajectory_history.append(PhaseSpacePoint(
                timestamp=tick.now,
                bg=tick.glucose.value,
                delta=tick.glucose.delta,
                acceleration=tick.glucose.acceleration,
                insulin_activity=activity,
                iob=tick.insulin.iob,
                stage=stage,
                minutes_since_last_dose=tick.insulin.minutes_since_last_dose,
                cob=tick.active_carbs,
            ))
        except Exception as exc:
            logger.warning("Could not record phase-space point: %s", exc)

    def _compute_runtime(self, tick: TickInput, profile: Profile, window_minutes: float) -> Optional[PkPdRuntime]:
        modes = tick.modes
        try:
            return self.pkpd.compute_runtime(
                now_minutes=tick.now,
                delta=tick.glucose.delta,
                iob=tick.insulin.iob,
                active_carbs=tick.active_carbs,
                window_minutes=window_minutes,
                exercise=modes.exercise or modes.sport,
                profile_isf=profile.isf,
                tdd_24h=tick.tdd_24h,
                meal_context=MealContext(
                    meal_mode_active=modes.any_meal_window or modes.forced_meal_active,
                    predicted_bg=tick.predicted,
                    target_bg=profile.target_bg,
                ),
            )
        except Exception as exc:
            logger.warning("PK/PD runtime unavailable, using profile ISF: %s", exc)
            return None

    def _run_engine(self, tick: TickInput, profile: Profile, fused_isf: float, lgs: float, now: float) -> EngineDecision:
        try:
            smb_to_give = self.smb_policy.propose(tick, fused_isf)
            inp = EngineInput.from_tick(
                tick,
                fused_isf=fused_isf,
                lgs_threshold=lgs,
                smb_to_give=smb_to_give,
                zero_since_minutes=self.basal_history.zero_basal_duration_minutes(now),
                minutes_since_last_change=self.basal_history.minutes_since_last_change(now),
                last_temp_is_zero=self.basal_history.last_temp_is_zero(now),
            )
            return self.engine.decide(inp)
        except Exception as exc:
            logger.warning("Decision engine failed, holding profile basal: %s", exc)
            return EngineDecision(
                rate=profile.basal_rate,
                duration=self.config.safety.default_duration,
                override_safety=False,
                rule="engine_error",
                reasons=[ReasonEntry("Engine unavailable: profile basal", "fallback", profile.basal_rate)],
            )

    def _analyze_trajectory(self, now: float, profile: Profile) -> Optional[TrajectoryAnalysis]:
        try:
            snapshot = self.trajectory_history.snapshot(now)
            orbit = StableOrbit.from_profile(profile.target_bg, profile.basal_rate)
            return self.trajectory_guard.analyze(snapshot, orbit)
        except Exception as exc:
            logger.warning("Trajectory analysis failed, using neutral modulation: %s", exc)
            return None

    def _context(self, tick: TickInput, bg: float) -> ContextInfluence:
        try:
            return self.context_engine.compute(tick.intents, tick.now, bg, tick.insulin.iob)
        except Exception as exc:
            logger.warning("Context influence failed, ignoring intents: %s", exc)
            return ContextInfluence()

    def _run_smb(self,
                 tick: TickInput,
                 fused_isf: float,
                 lgs: float,
                 runtime: Optional[PkPdRuntime],
                 context: ContextInfluence,
                 analysis: Optional[TrajectoryAnalysis],
                 hypo_zero: bool) -> SmbOutcome:
        modulation = analysis.modulation if analysis is not None else NEUTRAL_MODULATION
        try:
            return self.smb_policy.evaluate(
                tick, fused_isf, lgs,
                runtime=runtime,
                context=context,
                modulation=modulation,
                hypo_zero=hypo_zero,
            )
        except Exception as exc:
            logger.warning("SMB policy failed, no micro-bolus this tick: %s", exc)
            return SmbOutcome(
                bolus=0.0,
                interval_minutes=self.config.safety.base_smb_interval,
                prefer_basal=True,
                proposed=0.0,
                reasons=[ReasonEntry("SMB unavailable: no bolus", "fallback", 0.0)],
            )

    def _finalize(self, decision: Decision, profile: Profile, now: float) -> Decision:
        cfg = self.config.safety
        cap = min(cfg.max_rate_multiplier * profile.basal_rate, max(profile.pump.max_basal, profile.basal_rate))
        rate = quantize(max(0.0, decision.rate), profile.pump.basal_step)
        rate = min(cap, max(0.0, rate))
        if rate < decision.rate - 1e-9:
            decision.add_reason(f"Rate capped at {rate:.2f}U/h", "safety", rate, "max basal")
        decision.rate = round(rate, 4)
        try:
            decision.bolus = self.validator.validate_dose(decision.bolus)
        except ValueError as exc:
            logger.warning("Dropping micro-bolus: %s", exc)
            decision.bolus = 0.0

        self.basal_history.record(now, decision.rate, decision.duration)
        logger.debug(
            "Decision rate=%.2f U/h x %d min bolus=%.2f U (%s)",
            decision.rate, decision.duration, decision.bolus, decision.reason_text(),
        )
        return decision

    def _fallback(self, tick: TickInput, why: str) -> Decision:
        cfg = self.config.safety
        profile = tick.profile
        basal = profile.basal_rate if profile is not None and profile.basal_rate >= 0 else 0.0
        bg = tick.glucose.value if tick.glucose is not None else float("nan")
        lgs = cfg.lgs_for(profile.lgs_threshold) if profile is not None else cfg.default_lgs_threshold
        low = bg != bg or bg < lgs
        rate = 0.0 if low else basal
        decision = Decision(rate=rate, duration=cfg.default_duration, fallback=True)
        decision.add_reason(f"FALLBACK: {why}", "fallback", rate, "suspend" if rate == 0.0 else "profile basal")
        return decision

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _schedule_persist(self, params: ActionModelParams) -> None:
        if self.persist is None:
            return
        future = self._executor.submit(self.persist, params)
        future.add_done_callback(self._on_persisted)
        self._pending = future

    @staticmethod
    def _on_persisted(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Persisting PK/PD parameters failed: %s", exc)
