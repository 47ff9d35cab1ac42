from .history import BasalHistoryProvider, EmptyHistory, TempBasalEvent, TempBasalHistory
from .planner import BasalPlan, BasalPlanner
from .advisor import AdaptiveBasalAdvisor, AdvisorInput, AdvisorSuggestion
from .engine import BasalDecisionEngine, EngineDecision, EngineInput, RuleOutcome, detect_meal_onset

__all__ = [
    "BasalHistoryProvider",
    "EmptyHistory",
    "TempBasalEvent",
    "TempBasalHistory",
    "BasalPlan",
    "BasalPlanner",
    "AdaptiveBasalAdvisor",
    "AdvisorInput",
    "AdvisorSuggestion",
    "BasalDecisionEngine",
    "EngineDecision",
    "EngineInput",
    "RuleOutcome",
    "detect_meal_onset",
]
