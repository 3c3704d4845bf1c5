"""Statistics over plain numeric series.

Both functions take any sequence of numbers (lists, deques, tuples) and walk it
in a single pass where possible. They hold no state between calls.

Notes on conventions:
- ``mean`` of an empty series is 0.0, never an error. Callers use it directly
  to report the average of an empty window or an empty price history.
- ``pearson_correlation`` treats both series as samples and uses the n-1
  (Bessel-corrected) divisor for variance and covariance.
"""

import logging
import math
from typing import Sequence

from errors import InvalidInput

logger = logging.getLogger(__name__)


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean of ``values``; 0.0 for an empty series."""
    n = len(values)
    if n == 0:
        return 0.0
    total = 0.0
    for v in values:
        total += float(v)
    return total / n


def pearson_correlation(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Sample Pearson correlation of two equal-length series, rounded to 4 dp.

    Contract:
    - Input: ``len(xs) == len(ys) > 0``, otherwise ``InvalidInput``.
    - Output: covariance / (std_x * std_y) in [-1, 1].
    - Edge cases: a single pair has no n-1 divisor, and a constant series has
      zero standard deviation. Both return 0.0 instead of NaN or infinity,
      since no linear relationship can be measured.
    """
    n = len(xs)
    if n != len(ys) or n == 0:
        raise InvalidInput("Price series must be of equal length and not empty")
    if n == 1:
        return 0.0

    x_vals = [float(x) for x in xs]
    y_vals = [float(y) for y in ys]
    x_mean = mean(x_vals)
    y_mean = mean(y_vals)

    covariance = 0.0
    x_var = 0.0
    y_var = 0.0
    for x, y in zip(x_vals, y_vals):
        dx = x - x_mean
        dy = y - y_mean
        covariance += dx * dy
        x_var += dx * dx
        y_var += dy * dy

    covariance /= n - 1
    x_std = math.sqrt(x_var / (n - 1))
    y_std = math.sqrt(y_var / (n - 1))

    if x_std == 0.0 or y_std == 0.0:
        logger.debug("Constant series in correlation input, reporting 0.0")
        return 0.0

    corr = covariance / (x_std * y_std)
    # Float error can push a perfect correlation just past the bound
    corr = max(-1.0, min(1.0, corr))
    return round(corr, 4)
