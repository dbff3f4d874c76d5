"""SeriesGrouper: merge individual field readings into one Metric per series and timestamp."""

from datetime import datetime
from typing import Mapping

from .types import Metric, NormalizedValue

_SeriesKey = tuple[str, frozenset[tuple[str, str]], datetime]


class SeriesGrouper:
    """
    Accumulates (measurement, tags, timestamp, field, value) readings for one cycle.

    Readings with the same measurement, tag set and timestamp merge into a single
    Metric; a repeated field name under the same key overwrites the earlier value.
    Not thread-safe: one writer per cycle, cycles never overlap.
    """

    def __init__(self) -> None:
        self._series: dict[_SeriesKey, tuple[dict[str, str], dict[str, NormalizedValue]]] = {}

    def add(
        self,
        measurement: str,
        tags: Mapping[str, str],
        timestamp: datetime,
        field: str,
        value: NormalizedValue,
    ) -> None:
        key = (measurement, frozenset(tags.items()), timestamp)
        entry = self._series.get(key)
        if entry is None:
            entry = (dict(tags), {})
            self._series[key] = entry
        entry[1][field] = value

    def drain(self) -> list[Metric]:
        """Return all metrics accumulated since the last drain (first-seen order) and reset."""
        metrics = [
            Metric(measurement=key[0], tags=tags, timestamp=key[2], fields=fields)
            for key, (tags, fields) in self._series.items()
        ]
        self._series = {}
        return metrics

    def __len__(self) -> int:
        return len(self._series)
