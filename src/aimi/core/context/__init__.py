from .influence import ContextInfluence, ContextInfluenceEngine, ContextMode

__all__ = ["ContextInfluence", "ContextInfluenceEngine", "ContextMode"]
