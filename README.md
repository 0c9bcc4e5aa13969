# stepagg

Step-batched aggregation building blocks for evaluating time-series queries.
Input arrives as batches of `StepVector`s, one per evaluation timestamp. The
operators group series by labels and emit aggregated vectors in the same
batched shape.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

The package has no runtime dependencies.

## Modules

### `stepagg.accumulator`

This module holds per-group accumulators. Each one has `add(value, histogram)`,
`add_vector(values, histograms)`, `value()`, `value_type()` and `reset(arg)`.

The accumulators are `SumAccumulator`, `AvgAccumulator`, `MaxAccumulator`,
`MinAccumulator`, `CountAccumulator`, `GroupAccumulator`, `StdDevAccumulator`,
`StdVarAccumulator`, `QuantileAccumulator` and `HistogramAvgAccumulator`.

`value_type()` returns a `ValueType`: `NO_VALUE`, `SINGLE_TYPE_VALUE` or
`MIXED_TYPE_VALUE`. The last one means both floats and histograms were added.

The module also has these helpers:

- `sum_compensated(values)`: Kahan–Neumaier compensated summation.
- `quantile(q, points)`: linear interpolation between samples. It sorts
  `points` in place. It returns NaN for empty input or a NaN `q`, `-inf` for
  `q < 0` and `+inf` for `q > 1`.
- `histogram_sum(current, histograms)`: adds histograms without modifying its
  inputs.

Histograms can be any object that meets the `HistogramLike` protocol. Such an
object has a `schema` attribute and the methods `copy`, `add`, `sub`, `mul`
and `div`.

### `stepagg.tables`

- `StepVector(t, sample_ids, samples, histogram_ids, histograms)` holds the
  samples at one timestamp. It has `append_sample` and `append_histogram`.
- `ScalarTable` aggregates one step into many output series (`OutputSeries`).
  `VectorTable` aggregates one step into a single output.
- `timestamp()` is `None` while a table is empty.
- `to_vector(warnings)` adds a warning string to the given set when an output
  mixes floats and histograms.
- `hash_metric(metric, without, grouping)` returns a grouping key and the
  group's labels. With `without`, it drops `__name__` and the grouping labels.
  Otherwise it keeps only the grouping labels.
- The factories are `new_scalar_accumulator`, `new_vector_accumulator`,
  `new_scalar_tables` and `new_vectorized_tables`. An unknown aggregation
  raises `UnsupportedAggregationError`.

### Operators

Operators share one interface:

- `series()` returns the output label sets as dicts.
- `next()` returns the next list of `StepVector`s, or `None` when the input is
  exhausted.
- `explain()` returns the child operators.
- `str(op)` describes the operator, for example
  `[aggregate] sum by ([pod])`.

The operators are these:

- `stepagg.hashaggregate.HashAggregate(next_op, param_op, aggregation, by, labels, steps_batch=10, warnings=None)`
  - It runs `sum`, `avg`, `min`, `max`, `count`, `group`, `stddev`, `stdvar`,
    `quantile` and `histogram_avg`.
  - For `quantile`, `param_op` supplies the parameter for each step. A
    parameter outside `[0, 1]` adds a warning to `op.warnings`.
  - Upstream batches with the same timestamps are merged into one result.
  - With `by ()`, it uses a single vectorized table where the aggregation
    allows.
- `stepagg.khashaggregate.KHashAggregate(next_op, param_op, aggregation, by, labels, steps_batch=10)`
  - It runs `topk` (when `aggregation == "topk"`) and otherwise `bottomk`,
    with a k that can change per step.
  - A k of 0 or less gives an empty step.
  - A NaN k, or a k that overflows int64, raises `ValueError`.
- `stepagg.count_values.CountValues(next_op, param, by, grouping, steps_batch=10)`
  - It runs `count_values`. Each distinct value becomes a series labelled
    `param=<value>`.
  - It reads the whole input on first use.

### `stepagg.sort`

This module orders instant-query results, given as a list of
`Sample(metric, f, h)`.

- `result_sort_for_call(name, args)` returns the sorter for `sort`,
  `sort_desc`, `sort_by_label` and `sort_by_label_desc`. For any other name it
  returns `NoSortResultSort`.
- `result_sort_for_aggregate(op, grouping, without)` returns the sorter for
  `topk` and `bottomk`.
- Every sorter has `sort(samples)`, which returns a new list. NaN values sort
  last.
- `natural_less(a, b)` compares strings in natural order: digit runs compare
  as numbers.
- `value_less(order, left, right)` is the value comparison that every sorter
  uses.

### `stepagg.explain`

- `explain_vector(operator)` builds an `ExplainOutputNode` tree from operator
  names.
- `analyze_query(operator)` builds an `AnalyzeOutputNode` tree over operators
  that expose `samples()` (returning `SampleStats` or `None`) and
  `sub_query()`.
- On that tree, `total_samples()`, `peak_samples()` and
  `total_samples_per_step()` aggregate the children's counts. Totals are not
  summed below a subquery.

### `stepagg.remote`

- The `RemoteEngine` protocol has `min_t`, `max_t`, `label_sets` and
  `new_range_query`.
- `StaticEndpoints(engines)` is a fixed list of remote engines. Its
  `engines()` method returns that list.

## Example

```python
from stepagg.accumulator import quantile, sum_compensated
from stepagg.hashaggregate import HashAggregate
from stepagg.tables import StepVector

sum_compensated([1.0, 1e100, 1.0, -1e100])   # 2.0
quantile(0.5, [4.0, 1.0, 3.0, 2.0])          # 2.5


class Source:
    def __init__(self, series, batches):
        self._series = series
        self._batches = iter(batches)

    def series(self):
        return self._series

    def next(self):
        return next(self._batches, None)

    def explain(self):
        return []


source = Source(
    [{"__name__": "x", "pod": "a"}, {"__name__": "x", "pod": "b"}, {"__name__": "x", "pod": "a"}],
    [[StepVector(0, [0, 1, 2], [1.0, 2.0, 3.0])]],
)
op = HashAggregate(source, None, "sum", True, ["pod"])
op.series()   # [{'pod': 'a'}, {'pod': 'b'}]
op.next()     # [StepVector(t=0, sample_ids=[0, 1], samples=[4.0, 2.0], ...)]
op.next()     # None
```

## What this package does not do

The package does not parse query strings. It has no storage, series
selectors, functions, binary operators or query engine that builds operator
trees. It also has no command-line tool.

It does not implement a histogram type; callers supply objects that meet
`HistogramLike`.

`RemoteEngine` is only an interface, and the package has no engine that
implements it.