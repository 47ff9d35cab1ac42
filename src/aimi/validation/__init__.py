from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import ValidationError

from aimi.api.types import (
    ContextIntent,
    GlucoseSample,
    InsulinDose,
    InsulinState,
    Intensity,
    ModeFlags,
    Profile,
    PumpCaps,
    TickInput,
)
from aimi.core.config import ControllerConfig
from aimi.core.context.influence import ContextMode
from aimi.core.pkpd.damping import TailAwareSmbPolicy
from aimi.core.pkpd.estimator import LearningConfig, PkPdBounds
from aimi.core.pkpd.isf_fusion import IsfFusionBounds
from aimi.core.pkpd.kernel import ActionModelParams
from aimi.core.safety.config import SafetyConfig
from aimi.validation.schemas import ControllerConfigModel, TickInputModel


def validate_controller_config_dict(data: Dict[str, Any]) -> ControllerConfigModel:
    return ControllerConfigModel.model_validate(data or {})


def controller_config_from_model(model: ControllerConfigModel) -> ControllerConfig:
    return ControllerConfig(
        safety=SafetyConfig(**model.safety.model_dump()),
        learning=LearningConfig(bounds=PkPdBounds(**model.bounds.model_dump()), **model.learning.model_dump()),
        isf_bounds=IsfFusionBounds(**model.isf_fusion.model_dump()),
        tail_policy=TailAwareSmbPolicy(**model.tail_policy.model_dump()),
        initial_params=ActionModelParams(**model.initial_params.model_dump()),
        trajectory_window_minutes=model.trajectory_window_minutes,
        context_mode=ContextMode(model.context_mode),
        use_advisor=model.use_advisor,
    )


def load_controller_config(path: Union[str, Path]) -> ControllerConfig:
    config_path = Path(path)
    data = yaml.safe_load(config_path.read_text())
    return controller_config_from_model(validate_controller_config_dict(data))


def tick_input_from_model(model: TickInputModel) -> TickInput:
    g = model.glucose
    profile = None
    if model.profile is not None:
        p = model.profile
        profile = Profile(
            basal_rate=p.basal_rate,
            isf=p.isf,
            target_bg=p.target_bg,
            carb_ratio=p.carb_ratio,
            max_iob=p.max_iob,
            lgs_threshold=p.lgs_threshold,
            max_smb=p.max_smb,
            pump=PumpCaps(**p.pump.model_dump()),
            basal_estimate=p.basal_estimate,
            tdd_7d_average=p.tdd_7d_average,
        )
    return TickInput(
        glucose=GlucoseSample(**g.model_dump()),
        insulin=InsulinState(
            iob=model.insulin.iob,
            doses=[InsulinDose(d.amount, d.elapsed_minutes) for d in model.insulin.doses],
        ),
        profile=profile,
        modes=ModeFlags(**model.modes.model_dump()),
        intents=[
            ContextIntent(
                category=i.category,
                intensity=Intensity[i.intensity],
                start=i.start,
                duration_minutes=i.duration_minutes,
                confidence=i.confidence,
            )
            for i in model.intents
        ],
        tdd_24h=model.tdd_24h,
        active_carbs=model.active_carbs,
        predicted_bg=model.predicted_bg,
        eventual_bg=model.eventual_bg,
        slope_from_max_deviation=model.slope_from_max_deviation,
        slope_from_min_deviation=model.slope_from_min_deviation,
        current_temp_rate=model.current_temp_rate,
        hypo_risk=model.hypo_risk,
        low_suspend_basal=model.low_suspend_basal,
    )


def tick_input_from_dict(data: Dict[str, Any]) -> TickInput:
    return tick_input_from_model(TickInputModel.model_validate(data))


def load_tick_input(path: Union[str, Path]) -> TickInput:
    input_path = Path(path)
    data = json.loads(input_path.read_text())
    return tick_input_from_dict(data)


def format_validation_error(error: ValidationError) -> List[str]:
    lines: List[str] = []
    for entry in error.errors():
        loc = ".".join(str(item) for item in entry.get("loc", []))
        msg = entry.get("msg", "Invalid value")
        lines.append(f"{loc}: {msg}")
    return lines
