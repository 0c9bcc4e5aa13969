"""Remote engines and the endpoints that list them."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Protocol, Sequence, runtime_checkable


@runtime_checkable
class RemoteEngine(Protocol):
    """An engine holding data for a time range and a set of external labels."""

    def max_t(self) -> int: ...

    def min_t(self) -> int: ...

    def label_sets(self) -> Sequence[Mapping[str, str]]: ...

    def new_range_query(
        self,
        opts: Any,
        plan: Any,
        start: datetime,
        end: datetime,
        interval: timedelta,
    ) -> Any: ...


class StaticEndpoints:
    """A fixed list of remote engines."""

    def __init__(self, engines: Iterable[RemoteEngine]) -> None:
        self._engines = list(engines)

    def engines(self) -> list[RemoteEngine]:
        return list(self._engines)