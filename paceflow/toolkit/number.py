#!/usr/bin/env python3
"""
Null-aware aggregation helpers.

Every helper skips absent values (``None`` and NaN). When nothing is present
the result is ``None``: zero is a recorded value and is never used as a
stand-in for "no data".
"""
import math
from typing import Iterable, Iterator, Optional, Union

Number = Union[int, float]


def _present(values: Iterable[Optional[Number]]) -> Iterator[Number]:
    for value in values:
        if value is None:
            continue
        if isinstance(value, float) and math.isnan(value):
            continue
        yield value


def avg(values: Iterable[Optional[Number]]) -> Optional[float]:
    """Arithmetic mean of the present values."""
    total = 0.0
    count = 0
    for value in _present(values):
        total += value
        count += 1
    if count == 0:
        return None
    return total / count


def sum_of(values: Iterable[Optional[Number]]) -> Optional[Number]:
    """Sum of the present values."""
    result: Optional[Number] = None
    for value in _present(values):
        result = value if result is None else result + value
    return result


def max_of(values: Iterable[Optional[Number]]) -> Optional[Number]:
    """Largest present value; the first present value seeds the comparison."""
    result: Optional[Number] = None
    for value in _present(values):
        if result is None or value > result:
            result = value
    return result


def min_of(values: Iterable[Optional[Number]]) -> Optional[Number]:
    """Smallest present value."""
    result: Optional[Number] = None
    for value in _present(values):
        if result is None or value < result:
            result = value
    return result


def count_of(values: Iterable[Optional[Number]]) -> int:
    """Number of present values."""
    return sum(1 for _ in _present(values))


def first_present(values: Iterable[Optional[Number]]) -> Optional[Number]:
    """First present value in iteration order."""
    for value in _present(values):
        return value
    return None


def last_present(values: Iterable[Optional[Number]]) -> Optional[Number]:
    """Last present value in iteration order."""
    result = None
    for value in _present(values):
        result = value
    return result


class Accumulator:
    """
    Streaming min/max/avg/sum over optional values.

    Used when several statistics are needed from a single pass, e.g. when
    rolling laps up into a session.
    """

    def __init__(self):
        self.min: Optional[Number] = None
        self.max: Optional[Number] = None
        self._sum = 0.0
        self.count = 0

    def collect(self, value: Optional[Number]) -> None:
        if value is None:
            return
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return
        if self.min is None or value < self.min:
            self.min = value
        if self.max is None or value > self.max:
            self.max = value
        self._sum += value
        self.count += 1

    def avg(self) -> Optional[float]:
        if self.count == 0:
            return None
        return self._sum / self.count

    def sum(self) -> Optional[float]:
        if self.count == 0:
            return None
        return self._sum
