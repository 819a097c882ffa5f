import sys
from datetime import datetime
from pathlib import Path

# Make the top-level traindown module importable without installing it
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

import pytest

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0)

SAMPLE = """\
DATE: 2023-01-15
META: location: home gym
NOTE: deload week

MOVEMENT: Squat
  META: bar: safety squat
  LOAD: 100
    REPS: 5
    SETS: 3
    NOTE: easy
  LOAD: 110
    REPS: 3

SUPERSET: Chin-up
  NOTE: strict
  LOAD: 10
    REPS: 8
"""


@pytest.fixture
def sample_text():
    return SAMPLE


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
