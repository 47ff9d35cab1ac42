from .param_store import JsonParamStore

__all__ = ["JsonParamStore"]
