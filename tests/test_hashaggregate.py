import math
from dataclasses import dataclass

import pytest

from stepagg.hashaggregate import HashAggregate
from stepagg.tables import (
    MIXED_FLOATS_HISTOGRAMS_WARNING,
    StepVector,
    UnsupportedAggregationError,
)


class _Op:
    def __init__(self, series, batches, name="op"):
        self._series = series
        self._batches = list(batches)
        self.name = name

    def series(self):
        return self._series

    def next(self):
        return self._batches.pop(0) if self._batches else None

    def explain(self):
        return []

    def __str__(self):
        return self.name


@dataclass
class _Hist:
    schema: int = 0
    count: float = 0.0

    def copy(self):
        return _Hist(self.schema, self.count)

    def add(self, other):
        self.count += other.count
        return self

    def sub(self, other):
        self.count -= other.count
        return self

    def mul(self, factor):
        self.count *= factor
        return self

    def div(self, factor):
        self.count /= factor
        return self


def _vec(t, pairs):
    return StepVector(t, [i for i, _ in pairs], [v for _, v in pairs])


SERIES = [
    {"__name__": "http", "pod": "p1", "c": "a"},
    {"__name__": "http", "pod": "p1", "c": "b"},
    {"__name__": "http", "pod": "p2", "c": "a"},
]


def _batch():
    return [
        _vec(0, [(0, 1.0), (1, 2.0), (2, 4.0)]),
        _vec(30, [(0, 3.0), (2, 5.0)]),
    ]


def test_sum_by_pod():
    agg = HashAggregate(_Op(SERIES, [_batch()]), None, "sum", True, ["pod"])
    assert agg.series() == [{"pod": "p1"}, {"pod": "p2"}]
    out = agg.next()
    assert [v.t for v in out] == [0, 30]
    assert out[0].sample_ids == [0, 1]
    assert out[0].samples == [1.0 + 2.0, 4.0]
    assert out[1].samples == [3.0, 5.0]
    assert agg.next() is None


def test_group_without_drops_name_and_labels():
    agg = HashAggregate(_Op(SERIES, [_batch()]), None, "group", False, ["c"])
    assert agg.series() == [{"pod": "p1"}, {"pod": "p2"}]
    out = agg.next()
    assert out[0].samples == [1.0, 1.0]


def test_vectorized_sum_without_grouping():
    agg = HashAggregate(_Op(SERIES, [_batch()]), None, "sum", True, [])
    assert agg.series() == [{}]
    out = agg.next()
    assert out[0].sample_ids == [0]
    assert out[0].samples == [1.0 + 2.0 + 4.0]
    assert out[1].samples == [3.0 + 5.0]


def test_vectorized_falls_back_to_scalar_tables():
    op = _Op(SERIES[:1], [[_vec(0, [(0, 7.0)])]])
    agg = HashAggregate(op, None, "stddev", True, [])
    assert agg.series() == [{}]
    assert agg.next()[0].samples == [0.0]


def test_batches_with_equal_timestamps_are_merged():
    batches = [
        [_vec(0, [(0, 1.0)]), _vec(30, [(0, 2.0)])],
        [_vec(0, [(1, 4.0)]), _vec(30, [(1, 8.0)])],
        [_vec(60, [(0, 16.0)])],
    ]
    agg = HashAggregate(_Op(SERIES[:2], batches), None, "sum", True, ["pod"])
    first = agg.next()
    assert [v.t for v in first] == [0, 30]
    assert first[0].samples == [1.0 + 4.0]
    assert first[1].samples == [2.0 + 8.0]
    second = agg.next()
    assert [v.t for v in second] == [60]
    assert second[0].samples == [16.0]
    assert agg.next() is None


@pytest.mark.parametrize("q, expected_index", [(0.0, 0), (1.0, 1)])
def test_quantile_extremes(q, expected_index):
    values = [1.0, 2.0]
    op = _Op(SERIES[:2], [[_vec(0, [(0, values[0]), (1, values[1])])]])
    params = _Op([], [[_vec(0, [(0, q)])]])
    agg = HashAggregate(op, params, "quantile", True, ["pod"])
    assert agg.next()[0].samples == [values[expected_index]]
    assert agg.warnings == set()


def test_quantile_out_of_range_warns():
    op = _Op(SERIES[:2], [[_vec(0, [(0, 1.0), (1, 2.0)])]])
    params = _Op([], [[_vec(0, [(0, 2.0)])]])
    agg = HashAggregate(op, params, "quantile", True, ["pod"])
    assert agg.next()[0].samples == [math.inf]
    assert len(agg.warnings) == 1
    assert next(iter(agg.warnings)).startswith(
        "PromQL warning: quantile value should be between 0 and 1"
    )


def test_histogram_sum_and_mixed_warning():
    hist_vec = StepVector(0, [], [], [0, 1], [_Hist(count=2.0), _Hist(count=3.0)])
    agg = HashAggregate(_Op(SERIES[:2], [[hist_vec]]), None, "sum", True, [])
    out = agg.next()
    assert out[0].histogram_ids == [0]
    assert out[0].histograms[0].count == 2.0 + 3.0

    mixed = StepVector(0, [0], [1.0], [1], [_Hist(count=2.0)])
    agg = HashAggregate(_Op(SERIES[:2], [[mixed]]), None, "sum", True, ["pod"])
    out = agg.next()
    assert out[0].samples == [] and out[0].histograms == []
    assert MIXED_FLOATS_HISTOGRAMS_WARNING in agg.warnings


def test_unsupported_aggregation():
    with pytest.raises(UnsupportedAggregationError):
        HashAggregate(_Op([], []), None, "topk", True, [])


def test_string_and_explain():
    nxt = _Op([], [])
    param = _Op([], [], name="param")
    agg = HashAggregate(nxt, None, "sum", True, ["b", "a"])
    assert str(agg) == "[aggregate] sum by ([a b])"
    assert agg.explain() == [nxt]
    q = HashAggregate(nxt, param, "quantile", False, ["job"])
    assert str(q) == "[aggregate] quantile without ([job])"
    assert q.explain() == [param, nxt]


def test_empty_input_returns_none():
    agg = HashAggregate(_Op(SERIES, []), None, "sum", True, ["pod"])
    assert agg.next() is None