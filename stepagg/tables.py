"""Per-step aggregation tables that route input samples to accumulators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping, MutableSet, Optional, Sequence

from stepagg.accumulator import (
    Accumulator,
    AvgAccumulator,
    CountAccumulator,
    GroupAccumulator,
    HistogramAvgAccumulator,
    HistogramLike,
    MaxAccumulator,
    MinAccumulator,
    QuantileAccumulator,
    StdDevAccumulator,
    StdVarAccumulator,
    SumAccumulator,
    ValueType,
)

METRIC_NAME = "__name__"
MIXED_FLOATS_HISTOGRAMS_WARNING = (
    "PromQL warning: encountered a mix of histograms and floats for aggregation"
)

LabelKey = tuple[tuple[str, str], ...]


class UnsupportedAggregationError(Exception):
    """The aggregation is not supported by the requested kind of table."""


@dataclass
class StepVector:
    """The samples of all series at one timestamp."""

    t: int
    sample_ids: list[int] = field(default_factory=list)
    samples: list[float] = field(default_factory=list)
    histogram_ids: list[int] = field(default_factory=list)
    histograms: list[HistogramLike] = field(default_factory=list)

    def append_sample(self, sample_id: int, value: float) -> None:
        self.sample_ids.append(sample_id)
        self.samples.append(value)

    def append_histogram(self, sample_id: int, histogram: HistogramLike) -> None:
        self.histogram_ids.append(sample_id)
        self.histograms.append(histogram)


@dataclass
class OutputSeries:
    """An output series of an aggregation with its position in the output."""

    metric: dict[str, str]
    id: int


def hash_metric(
    metric: Mapping[str, str],
    without: bool,
    grouping: Sequence[str],
) -> tuple[LabelKey, dict[str, str]]:
    """Return the grouping key of ``metric`` and the labels of its group.

    With ``without`` the metric name and the grouping labels are dropped;
    otherwise only the grouping labels are kept.
    """
    names = set(grouping)
    if without:
        kept = {
            name: value
            for name, value in sorted(metric.items())
            if name != METRIC_NAME and name not in names
        }
    else:
        if not grouping:
            return (), {}
        kept = {name: value for name, value in sorted(metric.items()) if name in names}
    return tuple(kept.items()), kept


_SCALAR_ACCUMULATORS: dict[str, Callable[[], Accumulator]] = {
    "sum": SumAccumulator,
    "max": MaxAccumulator,
    "min": MinAccumulator,
    "count": CountAccumulator,
    "avg": AvgAccumulator,
    "group": GroupAccumulator,
    "stddev": StdDevAccumulator,
    "stdvar": StdVarAccumulator,
    "quantile": QuantileAccumulator,
    "histogram_avg": HistogramAvgAccumulator,
}

_VECTOR_ACCUMULATORS: dict[str, Callable[[], Accumulator]] = {
    "sum": SumAccumulator,
    "max": MaxAccumulator,
    "min": MinAccumulator,
    "count": CountAccumulator,
    "avg": AvgAccumulator,
    "group": GroupAccumulator,
}


def new_scalar_accumulator(aggregation: str) -> Accumulator:
    """Create an accumulator fed one sample at a time."""
    try:
        return _SCALAR_ACCUMULATORS[aggregation]()
    except KeyError:
        raise UnsupportedAggregationError(
            f"unknown aggregation function {aggregation}"
        ) from None


def new_vector_accumulator(aggregation: str) -> Accumulator:
    """Create an accumulator fed whole vectors at a time."""
    try:
        return _VECTOR_ACCUMULATORS[aggregation]()
    except KeyError:
        raise UnsupportedAggregationError(
            f"unknown aggregation function {aggregation}"
        ) from None


def _record_mixed(warnings: Optional[MutableSet[str]]) -> None:
    if warnings is not None:
        warnings.add(MIXED_FLOATS_HISTOGRAMS_WARNING)


class ScalarTable:
    """Aggregates one step of input samples into several output series.

    ``timestamp()`` is ``None`` while the table holds nothing.
    """

    def __init__(
        self,
        inputs: Sequence[int],
        outputs: Sequence[OutputSeries],
        aggregation: str,
    ) -> None:
        self._ts: Optional[int] = None
        self._inputs = inputs
        self._outputs = outputs
        self._accumulators = [new_scalar_accumulator(aggregation) for _ in outputs]

    def timestamp(self) -> Optional[int]:
        return self._ts

    def aggregate(self, vector: StepVector) -> None:
        self._ts = vector.t
        for sample_id, sample in zip(vector.sample_ids, vector.samples):
            self._accumulator_for(sample_id).add(sample, None)
        for sample_id, histogram in zip(vector.histogram_ids, vector.histograms):
            self._accumulator_for(sample_id).add(0.0, histogram)

    def _accumulator_for(self, sample_id: int) -> Accumulator:
        output = self._outputs[self._inputs[sample_id]]
        return self._accumulators[output.id]

    def to_vector(self, warnings: Optional[MutableSet[str]] = None) -> StepVector:
        """Write out the accumulated values; mixed outputs add a warning."""
        result = StepVector(self._ts)
        for output, accumulator in zip(self._outputs, self._accumulators):
            kind = accumulator.value_type()
            if kind is ValueType.SINGLE_TYPE_VALUE:
                value, histogram = accumulator.value()
                if histogram is None:
                    result.append_sample(output.id, value)
                else:
                    result.append_histogram(output.id, histogram)
            elif kind is ValueType.MIXED_TYPE_VALUE:
                _record_mixed(warnings)
        return result

    def reset(self, arg: float) -> None:
        for accumulator in self._accumulators:
            accumulator.reset(arg)
        self._ts = None


class VectorTable:
    """Aggregates one step of input samples into a single output series."""

    def __init__(self, accumulator: Accumulator) -> None:
        self._ts: Optional[int] = None
        self._accumulator = accumulator

    def timestamp(self) -> Optional[int]:
        return self._ts

    def aggregate(self, vector: StepVector) -> None:
        self._ts = vector.t
        self._accumulator.add_vector(vector.samples, vector.histograms)

    def to_vector(self, warnings: Optional[MutableSet[str]] = None) -> StepVector:
        result = StepVector(self._ts)
        kind = self._accumulator.value_type()
        if kind is ValueType.SINGLE_TYPE_VALUE:
            value, histogram = self._accumulator.value()
            if histogram is None:
                result.append_sample(0, value)
            else:
                result.append_histogram(0, histogram)
        elif kind is ValueType.MIXED_TYPE_VALUE:
            _record_mixed(warnings)
        return result

    def reset(self, arg: float) -> None:
        self._ts = None
        self._accumulator.reset(arg)


def new_scalar_tables(
    steps_batch: int,
    input_cache: Sequence[int],
    output_cache: Sequence[OutputSeries],
    aggregation: str,
) -> list[ScalarTable]:
    """Create one independent scalar table per step of a batch."""
    return [ScalarTable(input_cache, output_cache, aggregation) for _ in range(steps_batch)]


def new_vectorized_tables(steps_batch: int, aggregation: str) -> list[VectorTable]:
    """Create one independent vector table per step of a batch."""
    return [VectorTable(new_vector_accumulator(aggregation)) for _ in range(steps_batch)]