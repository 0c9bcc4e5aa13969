"""Per-step accumulators behind the PromQL aggregation operators."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Protocol, Sequence


class ValueType(Enum):
    """What kind of value an accumulator currently holds."""

    NO_VALUE = 0
    SINGLE_TYPE_VALUE = 1
    MIXED_TYPE_VALUE = 2


class HistogramLike(Protocol):
    """The float histogram operations the accumulators rely on.

    ``add``, ``sub``, ``mul`` and ``div`` modify the histogram in place and
    return it; ``add`` and ``sub`` raise when the operands are incompatible.
    """

    schema: int

    def copy(self) -> "HistogramLike": ...

    def add(self, other: "HistogramLike") -> "HistogramLike": ...

    def sub(self, other: "HistogramLike") -> "HistogramLike": ...

    def mul(self, factor: float) -> "HistogramLike": ...

    def div(self, factor: float) -> "HistogramLike": ...


def _merge(total: HistogramLike, histogram: HistogramLike) -> HistogramLike:
    """Add two histograms; the one with the larger schema is added to the other."""
    if histogram.schema >= total.schema:
        return total.add(histogram)
    merged = histogram.copy()
    merged.add(total)
    return merged


def _div(numerator: float, denominator: float) -> float:
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


class Accumulator(ABC):
    """Collects the samples of one output series for one step."""

    @abstractmethod
    def add(self, value: float, histogram: Optional[HistogramLike]) -> None:
        """Add a float sample, or a histogram sample when one is given."""

    def add_vector(
        self,
        values: Sequence[float],
        histograms: Sequence[HistogramLike],
    ) -> None:
        """Add a whole batch of float and histogram samples."""
        for value in values:
            self.add(value, None)
        for histogram in histograms:
            self.add(0.0, histogram)

    @abstractmethod
    def value(self) -> tuple[float, Optional[HistogramLike]]:
        """Return the aggregated float and histogram."""

    @abstractmethod
    def value_type(self) -> ValueType:
        """Report whether the accumulator holds no, one or mixed value kinds."""

    @abstractmethod
    def reset(self, arg: float) -> None:
        """Clear the accumulator; ``arg`` is the aggregation parameter."""


class SumAccumulator(Accumulator):
    def __init__(self) -> None:
        self._value = 0.0
        self._hist_sum: Optional[HistogramLike] = None
        self._has_float = False

    def add_vector(self, values, histograms) -> None:
        if values:
            self._value += sum_compensated(values)
            self._has_float = True
        if histograms:
            self._hist_sum = histogram_sum(self._hist_sum, histograms)

    def add(self, value, histogram) -> None:
        if histogram is None:
            self._has_float = True
            self._value += value
            return
        if self._hist_sum is None:
            self._hist_sum = histogram.copy()
            return
        self._hist_sum = _merge(self._hist_sum, histogram)

    def value(self):
        return self._value, self._hist_sum

    def value_type(self) -> ValueType:
        if self._has_float and self._hist_sum is not None:
            return ValueType.MIXED_TYPE_VALUE
        if self._has_float or self._hist_sum is not None:
            return ValueType.SINGLE_TYPE_VALUE
        return ValueType.NO_VALUE

    def reset(self, arg) -> None:
        self._hist_sum = None
        self._has_float = False
        self._value = 0.0


def _nan_skipping_max(values: Sequence[float]) -> float:
    best = math.nan
    for value in values:
        if math.isnan(value):
            continue
        if math.isnan(best) or value > best:
            best = value
    return values[0] if math.isnan(best) else best


def _nan_skipping_min(values: Sequence[float]) -> float:
    best = math.nan
    for value in values:
        if math.isnan(value):
            continue
        if math.isnan(best) or value < best:
            best = value
    return values[0] if math.isnan(best) else best


class _SingleFloatAccumulator(Accumulator):
    def __init__(self) -> None:
        self._value = 0.0
        self._has_value = False

    def value(self):
        return self._value, None

    def value_type(self) -> ValueType:
        return ValueType.SINGLE_TYPE_VALUE if self._has_value else ValueType.NO_VALUE

    def reset(self, arg) -> None:
        self._has_value = False
        self._value = 0.0


class MaxAccumulator(_SingleFloatAccumulator):
    def add_vector(self, values, histograms) -> None:
        if not values:
            return
        first, rest = values[0], values[1:]
        self.add(first, None)
        if rest:
            self.add(_nan_skipping_max(rest), None)

    def add(self, value, histogram) -> None:
        if not self._has_value:
            self._value = value
            self._has_value = True
            return
        if self._value < value or math.isnan(self._value):
            self._value = value


class MinAccumulator(_SingleFloatAccumulator):
    def add_vector(self, values, histograms) -> None:
        if not values:
            return
        first, rest = values[0], values[1:]
        self.add(first, None)
        if rest:
            self.add(_nan_skipping_min(rest), None)

    def add(self, value, histogram) -> None:
        if not self._has_value:
            self._value = value
            self._has_value = True
            return
        if self._value > value or math.isnan(self._value):
            self._value = value


class GroupAccumulator(_SingleFloatAccumulator):
    def add_vector(self, values, histograms) -> None:
        if not values and not histograms:
            return
        self._has_value = True
        self._value = 1.0

    def add(self, value, histogram) -> None:
        self._has_value = True
        self._value = 1.0


class CountAccumulator(_SingleFloatAccumulator):
    def add_vector(self, values, histograms) -> None:
        if values or histograms:
            self._has_value = True
            self._value += float(len(values)) + float(len(histograms))

    def add(self, value, histogram) -> None:
        self._has_value = True
        self._value += 1.0


class AvgAccumulator(Accumulator):
    """Running mean of floats and of histograms, kept separately."""

    def __init__(self) -> None:
        self._avg = 0.0
        self._count = 0
        self._has_value = False
        self._hist_sum: Optional[HistogramLike] = None
        self._hist_count = 0.0

    def add(self, value, histogram) -> None:
        if histogram is not None:
            self._hist_count += 1
            if self._hist_sum is None:
                self._hist_sum = histogram.copy()
                return
            left = histogram.copy().div(self._hist_count)
            right = self._hist_sum.copy().div(self._hist_count)
            to_add = left.sub(right)
            self._hist_sum = self._hist_sum.add(to_add)
            return

        self._count += 1
        if not self._has_value:
            self._has_value = True
            self._avg = value
            return

        if math.isinf(self._avg):
            if math.isinf(value) and (self._avg > 0) == (value > 0):
                # Infinities of the same sign: the mean is already right.
                return
            if not math.isinf(value) and not math.isnan(value):
                # A finite value cannot move an infinite mean; the incremental
                # update below would otherwise turn it into NaN.
                return

        self._avg += value / self._count - self._avg / self._count

    def value(self):
        return self._avg, self._hist_sum

    def value_type(self) -> ValueType:
        has_float = self._count > 0
        has_hist = self._hist_count > 0
        if has_float and has_hist:
            return ValueType.MIXED_TYPE_VALUE
        if has_float or has_hist:
            return ValueType.SINGLE_TYPE_VALUE
        return ValueType.NO_VALUE

    def reset(self, arg) -> None:
        self._has_value = False
        self._count = 0
        self._hist_count = 0.0
        self._hist_sum = None


class _StatAccumulator(Accumulator):
    """Welford's running mean and sum of squared deviations."""

    def __init__(self) -> None:
        self._count = 0.0
        self._mean = 0.0
        self._m2 = 0.0
        self._has_value = False

    def add(self, value, histogram) -> None:
        self._has_value = True
        self._count += 1
        delta = value - self._mean
        self._mean += delta / self._count
        self._m2 += delta * (value - self._mean)

    def value_type(self) -> ValueType:
        return ValueType.SINGLE_TYPE_VALUE if self._has_value else ValueType.NO_VALUE

    def reset(self, arg) -> None:
        self._has_value = False
        self._count = 0.0
        self._mean = 0.0
        self._m2 = 0.0


class StdDevAccumulator(_StatAccumulator):
    def value(self):
        if self._count == 1:
            return 0.0, None
        variance = _div(self._m2, self._count)
        return (math.nan if math.isnan(variance) else math.sqrt(variance)), None


class StdVarAccumulator(_StatAccumulator):
    def value(self):
        if self._count == 1:
            return 0.0, None
        return _div(self._m2, self._count), None


class QuantileAccumulator(Accumulator):
    def __init__(self) -> None:
        self._arg = 0.0
        self._points: list[float] = []
        self._has_value = False

    def add(self, value, histogram) -> None:
        self._has_value = True
        self._points.append(value)

    def value(self):
        return quantile(self._arg, self._points), None

    def value_type(self) -> ValueType:
        return ValueType.SINGLE_TYPE_VALUE if self._has_value else ValueType.NO_VALUE

    def reset(self, arg) -> None:
        self._has_value = False
        self._arg = arg
        self._points.clear()


class HistogramAvgAccumulator(Accumulator):
    """Average of histogram samples; any float sample voids the result."""

    def __init__(self) -> None:
        self._sum: Optional[HistogramLike] = None
        self._count = 0
        self._has_float = False

    def add(self, value, histogram) -> None:
        if histogram is None:
            self._has_float = True
            return
        if self._count == 0:
            self._sum = histogram.copy()
        self._sum = _merge(self._sum, histogram)
        self._count += 1

    def value(self):
        if self._sum is None:
            return 0.0, None
        factor = math.inf if self._count == 0 else 1 / self._count
        return 0.0, self._sum.copy().mul(factor)

    def value_type(self) -> ValueType:
        if self._count > 0 and not self._has_float:
            return ValueType.SINGLE_TYPE_VALUE
        return ValueType.NO_VALUE

    def reset(self, arg) -> None:
        self._count = 0


def sum_compensated(values: Sequence[float]) -> float:
    """Sum with Neumaier's improved Kahan compensation."""
    total = 0.0
    compensation = 0.0
    for x in values:
        t = total + x
        if math.isinf(t):
            compensation = 0.0
        elif abs(total) >= abs(x):
            compensation += (total - t) + x
        else:
            compensation += (x - t) + total
        total = t
    return total + compensation


def _float_sort_key(x: float) -> tuple[int, float]:
    return (0, 0.0) if math.isnan(x) else (1, x)


def quantile(q: float, points: list[float]) -> float:
    """Return the q-quantile of ``points``, interpolating between samples.

    ``points`` is sorted in place, NaN values first.
    """
    if not points or math.isnan(q):
        return math.nan
    if q < 0:
        return -math.inf
    if q > 1:
        return math.inf
    points.sort(key=_float_sort_key)

    n = float(len(points))
    rank = q * (n - 1)
    lower = max(0.0, math.floor(rank))
    upper = min(n - 1, lower + 1)
    weight = rank - math.floor(rank)
    return points[int(lower)] * (1 - weight) + points[int(upper)] * weight


def histogram_sum(
    current: Optional[HistogramLike],
    histograms: Sequence[HistogramLike],
) -> Optional[HistogramLike]:
    """Add ``histograms`` onto ``current`` without modifying any of the inputs."""
    if not histograms:
        return current
    if current is None and len(histograms) == 1:
        return histograms[0].copy()
    if current is not None:
        total = current.copy()
        rest = histograms
    else:
        total = histograms[0].copy()
        rest = histograms[1:]
    for histogram in rest:
        if histogram.schema >= total.schema:
            total = total.add(histogram)
        else:
            total = histogram.copy().add(total)
    return total