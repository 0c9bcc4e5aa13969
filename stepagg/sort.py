"""Ordering of instant-query results for sort, sort_by_label, topk and bottomk."""

from __future__ import annotations

import functools
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence, Union

_CHUNK = re.compile(r"\d+|\D+")
_MAX_INT64 = 2**63 - 1


class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class Sample:
    """One series of an instant vector result."""

    metric: dict[str, str]
    f: float = 0.0
    h: Optional[Any] = None


def _as_int(chunk: str) -> Optional[int]:
    if chunk.isdigit() and chunk.isascii():
        number = int(chunk)
        if number <= _MAX_INT64:
            return number
    return None


def natural_less(a: str, b: str) -> bool:
    """Natural-order comparison: digit runs compare as numbers."""
    chunks_a = _CHUNK.findall(a)
    chunks_b = _CHUNK.findall(b)
    for i, chunk_a in enumerate(chunks_a):
        if i >= len(chunks_b):
            return False
        chunk_b = chunks_b[i]
        int_a, int_b = _as_int(chunk_a), _as_int(chunk_b)
        if int_a is not None and int_b is not None:
            if int_a != int_b:
                return int_a < int_b
        elif chunk_a != chunk_b:
            return chunk_a < chunk_b
        if i == len(chunks_a) - 1:
            return True
        if i == len(chunks_b) - 1:
            return False
    return False


def value_less(order: SortOrder, left: float, right: float) -> bool:
    """Value ordering used by all sorters; NaN always sorts last."""
    if math.isnan(right):
        return True
    if order is SortOrder.ASC:
        return left < right
    return left > right


def _sorted(samples: Sequence[Sample], less: Callable[[Sample, Sample], bool]) -> list[Sample]:
    def compare(a: Sample, b: Sample) -> int:
        if less(a, b):
            return -1
        if less(b, a):
            return 1
        return 0

    return sorted(samples, key=functools.cmp_to_key(compare))


def _compare_labels(a: Mapping[str, str], b: Mapping[str, str]) -> int:
    items_a = sorted(a.items())
    items_b = sorted(b.items())
    for (name_a, value_a), (name_b, value_b) in zip(items_a, items_b):
        if name_a != name_b:
            return -1 if name_a < name_b else 1
        if value_a != value_b:
            return -1 if value_a < value_b else 1
    return len(items_a) - len(items_b)


@dataclass(frozen=True)
class NoSortResultSort:
    """Leaves the result in its original order."""

    def sort(self, samples: Sequence[Sample]) -> list[Sample]:
        return list(samples)


@dataclass(frozen=True)
class SortFuncResultSort:
    """Orders by sample value, as sort() and sort_desc() do."""

    order: SortOrder = SortOrder.ASC

    def sort(self, samples: Sequence[Sample]) -> list[Sample]:
        return _sorted(samples, lambda a, b: value_less(self.order, a.f, b.f))


@dataclass(frozen=True)
class SortByLabelResultSort:
    """Orders naturally by the given labels, then by value."""

    sorting_labels: tuple[str, ...] = ()
    order: SortOrder = SortOrder.ASC

    def sort(self, samples: Sequence[Sample]) -> list[Sample]:
        def less(a: Sample, b: Sample) -> bool:
            for label in self.sorting_labels:
                left = a.metric.get(label, "")
                right = b.metric.get(label, "")
                if left == right:
                    continue
                if natural_less(left, right):
                    return self.order is SortOrder.ASC
                return self.order is SortOrder.DESC
            return value_less(self.order, a.f, b.f)

        return _sorted(samples, less)


@dataclass(frozen=True)
class AggregateResultSort:
    """Orders topk/bottomk results by group labels, then by value."""

    sorting_labels: tuple[str, ...] = ()
    group_by: bool = True
    order: SortOrder = SortOrder.ASC

    def _group(self, metric: Mapping[str, str]) -> dict[str, str]:
        names = set(self.sorting_labels)
        if self.group_by:
            return {k: v for k, v in metric.items() if k in names}
        return {k: v for k, v in metric.items() if k not in names}

    def sort(self, samples: Sequence[Sample]) -> list[Sample]:
        def less(a: Sample, b: Sample) -> bool:
            cmp = _compare_labels(self._group(a.metric), self._group(b.metric))
            if cmp != 0:
                return cmp < 0
            return value_less(self.order, a.f, b.f)

        return _sorted(samples, less)


ResultSort = Union[
    NoSortResultSort, SortFuncResultSort, SortByLabelResultSort, AggregateResultSort
]


def result_sort_for_call(name: str, args: Sequence[str]) -> ResultSort:
    """Sorter for a top-level function call.

    ``args`` are the call's arguments; those after the first name the sorting
    labels of sort_by_label and sort_by_label_desc.
    """
    labels = tuple(args[1:])
    if name == "sort":
        return SortFuncResultSort(SortOrder.ASC)
    if name == "sort_desc":
        return SortFuncResultSort(SortOrder.DESC)
    if name == "sort_by_label":
        return SortByLabelResultSort(labels, SortOrder.ASC)
    if name == "sort_by_label_desc":
        return SortByLabelResultSort(labels, SortOrder.DESC)
    return NoSortResultSort()


def result_sort_for_aggregate(
    op: str, grouping: Sequence[str], without: bool
) -> ResultSort:
    """Sorter for a top-level aggregation; only topk and bottomk are ordered."""
    if op == "topk":
        return AggregateResultSort(tuple(grouping), not without, SortOrder.DESC)
    if op == "bottomk":
        return AggregateResultSort(tuple(grouping), not without, SortOrder.ASC)
    return NoSortResultSort()