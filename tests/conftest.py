from pathlib import Path
import sys

import pytest

src_path = Path(__file__).resolve().parents[1] / "src"
if src_path.exists():
    sys.path.insert(0, str(src_path))

from aimi.api.types import Profile  # noqa: E402


@pytest.fixture
def default_profile():
    """1 U/h basal, ISF 50, target 100 and the default pump limits."""
    return Profile(basal_rate=1.0, isf=50.0)
