"""Step-batched aggregation operators, result sorting and analysis trees for time-series queries."""

__version__ = "0.1.0"

__all__ = [
    "accumulator",
    "tables",
    "hashaggregate",
    "khashaggregate",
    "count_values",
    "sort",
    "explain",
    "remote",
]