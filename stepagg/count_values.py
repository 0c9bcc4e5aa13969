"""count_values aggregation operator."""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Optional, Sequence

from stepagg.hashaggregate import VectorOperator
from stepagg.tables import StepVector, hash_metric

DEFAULT_STEPS_BATCH = 10


def _format_grouping(labels: Sequence[str]) -> str:
    return "[" + " ".join(labels) + "]"


def _format_float(value: float) -> str:
    """Shortest decimal form of ``value`` without an exponent."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


class CountValues:
    """Counts, per group and step, how many samples carry each distinct value.

    Every distinct value becomes an output series whose labels are the group's
    labels plus ``param`` set to the value. The whole input is read on first use.
    """

    def __init__(
        self,
        next_op: VectorOperator,
        param: str,
        by: bool,
        grouping: Sequence[str],
        steps_batch: int = DEFAULT_STEPS_BATCH,
    ) -> None:
        self._next = next_op
        self._param = param
        self._by = by
        self._grouping = sorted(grouping)
        self._steps_batch = steps_batch
        self._cur_step = 0
        self._ts: list[int] = []
        self._counts: list[dict[int, int]] = []
        self._series: Optional[list[dict[str, str]]] = None

    def __str__(self) -> str:
        mode = "by" if self._by else "without"
        return (
            f"[countValues] {mode} ({_format_grouping(self._grouping)})"
            f" - param ({self._param})"
        )

    def explain(self) -> list[VectorOperator]:
        return [self._next]

    def series(self) -> list[dict[str, str]]:
        self._ensure_initialized()
        return self._series

    def next(self) -> Optional[list[StepVector]]:
        """Return the next batch of counted steps, or None when exhausted."""
        self._ensure_initialized()
        if self._cur_step >= len(self._ts):
            return None
        end = min(self._cur_step + self._steps_batch, len(self._ts))
        batch = []
        for step in range(self._cur_step, end):
            vector = StepVector(self._ts[step])
            for output_id, count in self._counts[step].items():
                vector.append_sample(output_id, float(count))
            batch.append(vector)
        self._cur_step = end
        return batch

    def _ensure_initialized(self) -> None:
        if self._series is not None:
            return

        input_keys: list[tuple] = []
        bucket_labels: dict[tuple, dict[str, str]] = {}
        for metric in self._next.series():
            key, lbls = hash_metric(metric, not self._by, self._grouping)
            input_keys.append(key)
            bucket_labels.setdefault(key, lbls)

        output_ids: dict[tuple, int] = {}
        series: list[dict[str, str]] = []
        ts: list[int] = []
        counts: list[dict[int, int]] = []

        while (batch := self._next.next()) is not None:
            for vector in batch:
                ts.append(vector.t)
                per_bucket: dict[tuple, dict[float, int]] = {}
                for sample_id, value in zip(vector.sample_ids, vector.samples):
                    values = per_bucket.setdefault(input_keys[sample_id], {})
                    values[value] = values.get(value, 0) + 1

                per_output: dict[int, int] = {}
                for key, value_counts in per_bucket.items():
                    for value, count in value_counts.items():
                        lbls = dict(bucket_labels[key])
                        lbls[self._param] = _format_float(value)
                        ordered = dict(sorted(lbls.items()))
                        out_key = tuple(ordered.items())
                        output_id = output_ids.get(out_key)
                        if output_id is None:
                            series.append(ordered)
                            output_id = len(series) - 1
                            output_ids[out_key] = output_id
                        per_output[output_id] = per_output.get(output_id, 0) + count
                counts.append(per_output)

        self._ts = ts
        self._counts = counts
        self._series = series