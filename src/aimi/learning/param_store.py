from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from aimi.core.pkpd.kernel import ActionModelParams

logger = logging.getLogger("aimi.pkpd")


class JsonParamStore:
    """
    Small JSON file holding the learned insulin action model.

    Instances are callable so they can be handed to the controller directly
    as its persistence callback.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def __call__(self, params: ActionModelParams) -> str:
        return self.save(params)

    def save(self, params: ActionModelParams) -> str:
        data = {
            "dia_hours": params.dia_hours,
            "peak_minutes": params.peak_minutes,
            "saved_at": datetime.now().isoformat(timespec="seconds"),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)
        logger.debug("Saved PK/PD parameters to %s", self.path)
        return str(self.path)

    def load(self) -> Optional[ActionModelParams]:
        if not self.path.is_file():
            return None
        with open(self.path, "r") as f:
            data = json.load(f)
        try:
            return ActionModelParams(dia_hours=float(data["dia_hours"]), peak_minutes=float(data["peak_minutes"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"PARAM_STORE_ERROR: {self.path} is not a valid parameter file ({exc}).") from exc
