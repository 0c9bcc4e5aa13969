"""topk and bottomk aggregation operator."""

from __future__ import annotations

import heapq
import math
from typing import Optional, Sequence

from stepagg.hashaggregate import VectorOperator
from stepagg.tables import StepVector, hash_metric

_MAX_INT64 = 2**63 - 1
_MIN_INT64 = -(2**63)


def _format_grouping(labels: Sequence[str]) -> str:
    return "[" + " ".join(labels) + "]"


class KHashAggregate:
    """Keeps the k largest (topk) or smallest (bottomk) samples of each group.

    The output series are the input series; each step holds, group by group,
    the selected samples ordered from best to worst.
    """

    def __init__(
        self,
        next_op: VectorOperator,
        param_op: VectorOperator,
        aggregation: str,
        by: bool,
        labels: Sequence[str],
        steps_batch: int = 10,
    ) -> None:
        self._next = next_op
        self._param_op = param_op
        self._aggregation = aggregation
        self._by = by
        self._labels = sorted(labels)
        self._params = [0.0] * steps_batch
        self._top = aggregation == "topk"
        self._series: Optional[list[dict[str, str]]] = None
        self._input_to_group: list[int] = []
        self._group_count = 0

    def __str__(self) -> str:
        mode = "by" if self._by else "without"
        return f"[kaggregate] {self._aggregation} {mode} ({_format_grouping(self._labels)})"

    def explain(self) -> list[VectorOperator]:
        return [self._param_op, self._next]

    def series(self) -> list[dict[str, str]]:
        return self._ensure_initialized()

    def next(self) -> Optional[list[StepVector]]:
        """Return the next batch of selected samples, or None when exhausted."""
        batch = self._next.next()

        for i, arg in enumerate(self._param_op.next() or ()):
            value = arg.samples[0]
            self._params[i] = value
            if math.isnan(value) or value > _MAX_INT64 or value < _MIN_INT64:
                raise ValueError(f"Scalar value {value!r} overflows int64")

        if batch is None:
            return None

        self._ensure_initialized()
        result = []
        for vector, param in zip(batch, self._params):
            k = int(param)
            if k <= 0:
                result.append(StepVector(vector.t))
                continue
            result.append(self._select(vector, k))
        return result

    def _ensure_initialized(self) -> list[dict[str, str]]:
        if self._series is None:
            groups: dict[tuple, int] = {}
            series = self._next.series()
            for metric in series:
                key, _ = hash_metric(metric, not self._by, self._labels)
                self._input_to_group.append(groups.setdefault(key, len(groups)))
            self._group_count = len(groups)
            self._series = series
        return self._series

    def _key(self, value: float) -> tuple[int, float]:
        # Ordering under which the heap's top is the first sample to drop;
        # NaN always ranks lowest.
        if math.isnan(value):
            return (0, 0.0)
        return (1, value if self._top else -value)

    def _better(self, candidate: float, current: float) -> bool:
        if self._top:
            return current < candidate
        return candidate < current

    def _select(self, vector: StepVector, k: int) -> StepVector:
        heaps: list[list[tuple[tuple[int, float], int, float]]] = [
            [] for _ in range(self._group_count)
        ]
        for sample_id, value in zip(vector.sample_ids, vector.samples):
            heap = heaps[self._input_to_group[sample_id]]
            item = (self._key(value), sample_id, value)
            if len(heap) < k:
                heapq.heappush(heap, item)
                continue
            top_value = heap[0][2]
            if self._better(value, top_value) or (
                math.isnan(top_value) and not math.isnan(value)
            ):
                heapq.heapreplace(heap, item)

        out = StepVector(vector.t)
        for heap in heaps:
            for _, sample_id, value in sorted(heap, key=lambda e: e[0], reverse=True):
                out.append_sample(sample_id, value)
        return out