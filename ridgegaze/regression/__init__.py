"""
regression — Online ridge regressors mapping eye features to screen points.

Variants: :class:`RidgeRegression` (synchronous refit),
:class:`WeightedRidgeRegression` (recency/event-type weighted) and
:class:`ThreadedRidgeRegression` (solve on a worker thread).
"""

from ridgegaze.regression.base import RegressionModel
from ridgegaze.regression.ridge import RidgeRegression
from ridgegaze.regression.threaded import ThreadedRidgeRegression
from ridgegaze.regression.weighted import WeightedRidgeRegression

__all__ = [
    "RegressionModel",
    "RidgeRegression",
    "ThreadedRidgeRegression",
    "WeightedRidgeRegression",
]
