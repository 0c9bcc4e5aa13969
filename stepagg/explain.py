"""Explain and analyze trees built from an operator tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol


@dataclass
class SampleStats:
    """Sample counts recorded by one operator."""

    total_samples: int = 0
    peak_samples: int = 0
    total_samples_per_step: list[int] = field(default_factory=list)


class OperatorTelemetry(Protocol):
    def samples(self) -> Optional[SampleStats]: ...

    def sub_query(self) -> bool: ...


@dataclass
class ExplainOutputNode:
    """Name of an operator and the explanations of its inputs."""

    operator_name: str = ""
    children: list["ExplainOutputNode"] = field(default_factory=list)


@dataclass
class AnalyzeOutputNode:
    """Telemetry of an operator with its observable inputs.

    Sample totals include the children's, except below a subquery; the peak is
    the largest peak in the subtree. Totals are computed once, on first use.
    """

    operator_telemetry: Any
    children: list["AnalyzeOutputNode"] = field(default_factory=list)
    _aggregated: bool = field(default=False, init=False, repr=False, compare=False)
    _total: int = field(default=0, init=False, repr=False, compare=False)
    _peak: int = field(default=0, init=False, repr=False, compare=False)
    _per_step: list[int] = field(default_factory=list, init=False, repr=False, compare=False)

    def total_samples(self) -> int:
        self._aggregate()
        return self._total

    def total_samples_per_step(self) -> list[int]:
        self._aggregate()
        return self._per_step

    def peak_samples(self) -> int:
        self._aggregate()
        return self._peak

    def _aggregate(self) -> None:
        if self._aggregated:
            return
        self._aggregated = True

        stats = self.operator_telemetry.samples()
        if stats is not None:
            self._total += stats.total_samples
            self._peak += stats.peak_samples
            self._per_step = list(stats.total_samples_per_step)

        subquery = self.operator_telemetry.sub_query()
        for child in self.children:
            self._peak = max(self._peak, child.peak_samples())
            for i, count in enumerate(child.total_samples_per_step()):
                self._per_step[i] += count
            # Subqueries already account for their children's samples.
            if not subquery:
                self._total += child.total_samples()


def _is_observable(operator: Any) -> bool:
    return callable(getattr(operator, "samples", None)) and callable(
        getattr(operator, "sub_query", None)
    )


def analyze_query(operator: Any) -> AnalyzeOutputNode:
    """Build the analysis tree of ``operator`` and its observable inputs."""
    children = [
        analyze_query(child) for child in operator.explain() if _is_observable(child)
    ]
    return AnalyzeOutputNode(operator_telemetry=operator, children=children)


def explain_vector(operator: Any) -> ExplainOutputNode:
    """Build the explanation tree of ``operator``."""
    return ExplainOutputNode(
        operator_name=str(operator),
        children=[explain_vector(child) for child in operator.explain()],
    )