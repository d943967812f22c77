# demand_planning/utils/math_utils.py
import math
from typing import Sequence

import numpy as np

def round_up_to_multiple(value: float, multiple: float) -> float:
    """Round a value up to the next multiple.

    Args:
        value: Value to round
        multiple: Multiple to round to

    Returns:
        Rounded value, or the value unchanged when multiple <= 0
    """
    if multiple <= 0:
        return value

    return math.ceil(value / multiple) * multiple

def population_std(values: Sequence[float]) -> float:
    """Population standard deviation (divisor n), 0 for an empty series."""
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))
