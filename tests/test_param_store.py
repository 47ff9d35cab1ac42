import json

import pytest

from aimi.core.pkpd.kernel import ActionModelParams
from aimi.learning.param_store import JsonParamStore


def test_param_store_round_trip(tmp_path):
    store = JsonParamStore(tmp_path / "state" / "pkpd.json")

    assert store.load() is None

    path = store(ActionModelParams(dia_hours=7.5, peak_minutes=82.0))
    data = json.loads((tmp_path / "state" / "pkpd.json").read_text())

    assert path.endswith("pkpd.json")
    assert data["dia_hours"] == 7.5
    assert "saved_at" in data
    assert store.load() == ActionModelParams(dia_hours=7.5, peak_minutes=82.0)


def test_param_store_rejects_malformed_file(tmp_path):
    path = tmp_path / "pkpd.json"
    path.write_text(json.dumps({"dia_hours": 7.0}))

    with pytest.raises(ValueError, match="PARAM_STORE_ERROR"):
        JsonParamStore(path).load()
