"""Hash aggregation operator: sum, avg, count, quantile and friends per step."""

from __future__ import annotations

import math
from typing import Optional, Protocol, Sequence, Union

from stepagg.tables import (
    OutputSeries,
    ScalarTable,
    StepVector,
    UnsupportedAggregationError,
    VectorTable,
    hash_metric,
    new_scalar_accumulator,
    new_scalar_tables,
    new_vectorized_tables,
)

INVALID_QUANTILE_WARNING = "PromQL warning: quantile value should be between 0 and 1"
DEFAULT_STEPS_BATCH = 10

_Table = Union[ScalarTable, VectorTable]


class VectorOperator(Protocol):
    """An operator that yields batches of step vectors for a set of series."""

    def series(self) -> list[dict[str, str]]: ...

    def next(self) -> Optional[list[StepVector]]: ...

    def explain(self) -> list["VectorOperator"]: ...


def _format_grouping(labels: Sequence[str]) -> str:
    return "[" + " ".join(labels) + "]"


class HashAggregate:
    """Groups input series by labels and aggregates their samples per step.

    Batches whose timestamps match those already collected are folded into
    the same output steps, so several upstream batches may form one result.
    """

    def __init__(
        self,
        next_op: VectorOperator,
        param_op: Optional[VectorOperator],
        aggregation: str,
        by: bool,
        labels: Sequence[str],
        steps_batch: int = DEFAULT_STEPS_BATCH,
        warnings: Optional[set[str]] = None,
    ) -> None:
        # Fails early for aggregations no table can compute.
        new_scalar_accumulator(aggregation)
        self._next = next_op
        self._param_op = param_op
        self._aggregation = aggregation
        self._by = by
        self._labels = sorted(labels)
        self._steps_batch = steps_batch
        self._params = [0.0] * steps_batch
        self._last_batch: Optional[list[StepVector]] = None
        self._tables: Optional[list[_Table]] = None
        self._series: list[dict[str, str]] = []
        self.warnings: set[str] = warnings if warnings is not None else set()

    def __str__(self) -> str:
        mode = "by" if self._by else "without"
        return f"[aggregate] {self._aggregation} {mode} ({_format_grouping(self._labels)})"

    def explain(self) -> list[VectorOperator]:
        if self._aggregation == "quantile":
            return [self._param_op, self._next]
        return [self._next]

    def series(self) -> list[dict[str, str]]:
        self._ensure_initialized()
        return self._series

    def next(self) -> Optional[list[StepVector]]:
        """Return the next batch of aggregated steps, or None when exhausted."""
        tables = self._ensure_initialized()

        if self._param_op is not None:
            for i, arg in enumerate(self._param_op.next() or ()):
                param = arg.samples[0]
                self._params[i] = param
                if math.isnan(param) or param < 0 or param > 1:
                    self.warnings.add(f"{INVALID_QUANTILE_WARNING}, got {param:g}")

        for table, param in zip(tables, self._params):
            table.reset(param)

        if self._last_batch is not None:
            self._aggregate(self._last_batch)
            self._last_batch = None

        while True:
            batch = self._next.next()
            if batch is None:
                break
            current_ts = tables[0].timestamp()
            if current_ts is None or batch[0].t == current_ts:
                self._aggregate(batch)
                continue
            self._last_batch = batch
            break

        if tables[0].timestamp() is None:
            return None

        result = []
        for table in tables:
            if table.timestamp() is None:
                break
            result.append(table.to_vector(self.warnings))
        return result

    def _aggregate(self, batch: list[StepVector]) -> None:
        for table, vector in zip(self._tables, batch):
            table.aggregate(vector)
        if len(batch) > len(self._tables):
            raise IndexError("batch holds more steps than the aggregation tables")

    def _ensure_initialized(self) -> list[_Table]:
        if self._tables is None:
            if self._by and not self._labels:
                tables, series = self._vectorized_tables()
            else:
                tables, series = self._scalar_tables()
            self._tables = tables
            self._series = series
        return self._tables

    def _vectorized_tables(self) -> tuple[list[_Table], list[dict[str, str]]]:
        try:
            tables = new_vectorized_tables(self._steps_batch, self._aggregation)
        except UnsupportedAggregationError:
            return self._scalar_tables()
        return list(tables), [{}]

    def _scalar_tables(self) -> tuple[list[_Table], list[dict[str, str]]]:
        outputs: dict[tuple, OutputSeries] = {}
        input_cache: list[int] = []
        for metric in self._next.series():
            key, lbls = hash_metric(metric, not self._by, self._labels)
            output = outputs.get(key)
            if output is None:
                output = OutputSeries(metric=lbls, id=len(outputs))
                outputs[key] = output
            input_cache.append(output.id)
        output_cache = list(outputs.values())
        tables = new_scalar_tables(
            self._steps_batch, input_cache, output_cache, self._aggregation
        )
        return list(tables), [output.metric for output in output_cache]