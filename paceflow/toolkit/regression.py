#!/usr/bin/env python3
"""
Ordinary least squares fit of y = a + b*x.

Used by the summarizer to estimate a pace from (grade, pace) samples.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from ..exceptions import RegressionError

# Smallest x spread, relative to the largest |x|, that still defines a slope
_RELATIVE_SPREAD = 1e-9


@dataclass(frozen=True)
class Point:
    """A single (x, y) observation"""
    x: float
    y: float


class LinearRegression:
    """
    Closed-form simple linear regression.

    slope b = Sxy / Sxx over deviations from the means
    intercept a = mean(y) - b*mean(x)
    """

    def __init__(self):
        self.slope: Optional[float] = None
        self.intercept: Optional[float] = None
        self.n = 0

    @property
    def trained(self) -> bool:
        return self.slope is not None and self.intercept is not None

    def train(self, points: Iterable[Point]) -> "LinearRegression":
        """
        Fit the model to a set of points.

        Raises:
            RegressionError: fewer than 2 points, or x values without a
                spread relative to their magnitude
        """
        points = list(points)
        n = len(points)
        if n < 2:
            raise RegressionError(
                "at least 2 points are required to fit a line",
                {"points": n},
            )

        mean_x = sum(point.x for point in points) / n
        mean_y = sum(point.y for point in points) / n
        sxx = sxy = 0.0
        for point in points:
            dx = point.x - mean_x
            sxx += dx * dx
            sxy += dx * (point.y - mean_y)

        # All x equal, up to float resolution at their magnitude: the slope is undefined
        scale = max(abs(point.x) for point in points)
        if sxx <= n * (scale * _RELATIVE_SPREAD) ** 2:
            raise RegressionError("x values have zero variance", {"points": n})

        slope = sxy / sxx
        self.slope = slope
        self.intercept = mean_y - slope * mean_x
        self.n = n
        return self

    def fit(self, xs: Sequence[float], ys: Sequence[float]) -> "LinearRegression":
        """Fit the model to parallel x and y sequences."""
        if len(xs) != len(ys):
            raise RegressionError(
                "x and y must have the same length",
                {"xs": len(xs), "ys": len(ys)},
            )
        return self.train(Point(x, y) for x, y in zip(xs, ys))

    def predict(self, x: float) -> float:
        if not self.trained:
            raise RegressionError("model has not been trained")
        return self.intercept + self.slope * x

    def predict_many(self, xs: Iterable[float]) -> List[float]:
        return [self.predict(x) for x in xs]
