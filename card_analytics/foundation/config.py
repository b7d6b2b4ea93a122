"""Score and segment band configuration for RFM segmentation.

Every threshold used by the pipeline lives here. The scoring helpers in
:mod:`card_analytics.foundation.rfm` and the band-distribution reports in
:mod:`card_analytics.analyses.segments` read the same :class:`ScoreBands`
instances, so a recalibrated threshold changes scores and report labels
together.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Sequence

from card_analytics.exceptions import ConfigurationError

#: Number of thresholds per metric. Four cut points give five scores (5..1).
BANDS_PER_METRIC = 4

MIN_SCORE = 1
MAX_SCORE = BANDS_PER_METRIC + 1


class BandDirection(str, Enum):
    """How a raw metric is compared against its thresholds."""

    # value <= threshold earns the band (recency: fewer days is better)
    LOWER_IS_BETTER = "lower_is_better"
    # value >= threshold earns the band (frequency, monetary)
    HIGHER_IS_BETTER = "higher_is_better"


def _to_decimal(value: Any, *, context: str) -> Decimal:
    if isinstance(value, bool):
        raise ConfigurationError(f"{context}: threshold must be numeric, got {value!r}")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(
            f"{context}: threshold must be numeric, got {value!r}"
        ) from exc
    if not number.is_finite():
        raise ConfigurationError(f"{context}: threshold must be finite, got {value!r}")
    return number


def _is_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _format_threshold(value: Decimal) -> str:
    if value == value.to_integral_value():
        return str(int(value))
    return str(value.normalize())


@dataclass(frozen=True)
class ScoreBands:
    """Ordered threshold bands mapping a raw metric to a 1-5 score.

    Attributes
    ----------
    metric:
        Name of the raw metric ("recency", "frequency", "monetary").
    thresholds:
        Four cut points evaluated in order for scores 5, 4, 3, 2. A value
        matching none of them scores 1.
    direction:
        Whether lower or higher raw values earn the better score.
    tier_names:
        Five human readable tier names for scores 5..1, used in reports.
    unit:
        Optional suffix appended to thresholds in band labels (e.g. "d").
    """

    metric: str
    thresholds: tuple[Decimal, ...]
    direction: BandDirection
    tier_names: tuple[str, ...] = ("Very High", "High", "Medium", "Low", "Very Low")
    unit: str = ""

    def __post_init__(self) -> None:
        """Normalise thresholds to Decimal and validate ordering."""
        context = f"{self.metric} bands"
        object.__setattr__(self, "direction", BandDirection(self.direction))
        thresholds = tuple(
            _to_decimal(value, context=context) for value in self.thresholds
        )
        if len(thresholds) != BANDS_PER_METRIC:
            raise ConfigurationError(
                f"{context}: expected {BANDS_PER_METRIC} thresholds, got {len(thresholds)}"
            )
        pairs = list(zip(thresholds, thresholds[1:]))
        if self.direction is BandDirection.LOWER_IS_BETTER:
            ordered = all(lower < upper for lower, upper in pairs)
            expectation = "strictly increasing"
        else:
            ordered = all(upper > lower for upper, lower in pairs)
            expectation = "strictly decreasing"
        if not ordered:
            raise ConfigurationError(
                f"{context}: thresholds must be {expectation}: "
                f"{[_format_threshold(t) for t in thresholds]}"
            )
        if len(self.tier_names) != MAX_SCORE:
            raise ConfigurationError(
                f"{context}: expected {MAX_SCORE} tier names, got {len(self.tier_names)}"
            )
        object.__setattr__(self, "thresholds", thresholds)
        object.__setattr__(self, "tier_names", tuple(self.tier_names))

    def score(self, value: int | Decimal) -> int:
        """Return the score of ``value``; the first matching band wins."""
        for index, threshold in enumerate(self.thresholds):
            if self.direction is BandDirection.LOWER_IS_BETTER:
                matched = value <= threshold
            else:
                matched = value >= threshold
            if matched:
                return MAX_SCORE - index
        return MIN_SCORE

    def band_range(self, score: int) -> str:
        """Describe the raw-value range covered by ``score``."""
        if not MIN_SCORE <= score <= MAX_SCORE:
            raise ValueError(f"Score must be between {MIN_SCORE} and {MAX_SCORE}: {score}")
        cuts = [_format_threshold(t) for t in self.thresholds]
        index = MAX_SCORE - score
        unit = self.unit
        if self.direction is BandDirection.LOWER_IS_BETTER:
            if index == 0:
                return f"<={cuts[0]}{unit}"
            if index == len(cuts):
                return f">{cuts[-1]}{unit}"
            return f"{cuts[index - 1]}-{cuts[index]}{unit}"
        if index == 0:
            return f">={cuts[0]}{unit}"
        if index == len(cuts):
            return f"<{cuts[-1]}{unit}"
        return f"{cuts[index]}-{cuts[index - 1]}{unit}"

    def band_label(self, score: int) -> str:
        """Return the report label for ``score``, e.g. ``"Active (<=30d)"``."""
        return f"{self.tier_names[MAX_SCORE - score]} ({self.band_range(score)})"

    def with_thresholds(self, thresholds: Sequence[Any]) -> ScoreBands:
        """Return a copy of these bands with new cut points."""
        return ScoreBands(
            metric=self.metric,
            thresholds=tuple(thresholds),
            direction=self.direction,
            tier_names=self.tier_names,
            unit=self.unit,
        )


@dataclass(frozen=True)
class SegmentBands:
    """Thresholds mapping an RFM total (3-15) to a segment label.

    ``thresholds[i]`` is the minimum total for ``labels[i]``; a total below
    every threshold receives the last label.
    """

    thresholds: tuple[int, ...] = (11, 9, 6)
    labels: tuple[str, ...] = ("Premium", "Loyal", "Potential", "At Risk")

    def __post_init__(self) -> None:
        """Validate threshold ordering and label count."""
        context = "segment bands"
        if not (_is_list(self.thresholds) and _is_list(self.labels)):
            raise ConfigurationError(f"{context}: thresholds and labels must be lists")
        cut_points = []
        for value in self.thresholds:
            number = _to_decimal(value, context=context)
            if number != number.to_integral_value():
                raise ConfigurationError(
                    f"{context}: thresholds must be whole numbers, got {value!r}"
                )
            cut_points.append(int(number))
        thresholds = tuple(cut_points)
        if not thresholds:
            raise ConfigurationError("segment bands: at least one threshold required")
        if any(upper <= lower for upper, lower in zip(thresholds, thresholds[1:])):
            raise ConfigurationError(
                f"segment bands: thresholds must be strictly decreasing: {list(thresholds)}"
            )
        if len(self.labels) != len(thresholds) + 1:
            raise ConfigurationError(
                f"segment bands: expected {len(thresholds) + 1} labels, got {len(self.labels)}"
            )
        if not all(isinstance(label, str) and label for label in self.labels):
            raise ConfigurationError(f"{context}: labels must be non-empty strings")
        if len(set(self.labels)) != len(self.labels):
            raise ConfigurationError(f"segment bands: duplicate labels in {list(self.labels)}")
        object.__setattr__(self, "thresholds", thresholds)
        object.__setattr__(self, "labels", tuple(self.labels))

    def label(self, rfm_total: int) -> str:
        """Return the segment for ``rfm_total``; the first matching band wins."""
        for threshold, label in zip(self.thresholds, self.labels):
            if rfm_total >= threshold:
                return label
        return self.labels[-1]

    def rank(self, label: str) -> int:
        """Position of ``label`` from best (0) to worst."""
        try:
            return self.labels.index(label)
        except ValueError:
            raise ValueError(f"Unknown segment label: {label!r}") from None


DEFAULT_RECENCY_BANDS = ScoreBands(
    metric="recency",
    thresholds=(30, 90, 150, 210),
    direction=BandDirection.LOWER_IS_BETTER,
    tier_names=("Active", "Recent", "Moderate", "Stale", "Dormant"),
    unit="d",
)

DEFAULT_FREQUENCY_BANDS = ScoreBands(
    metric="frequency",
    thresholds=(1000, 500, 200, 50),
    direction=BandDirection.HIGHER_IS_BETTER,
    tier_names=("Very Frequent", "Frequent", "Moderate", "Low", "Very Low"),
)

DEFAULT_MONETARY_BANDS = ScoreBands(
    metric="monetary",
    thresholds=(100000, 50000, 25000, 10000),
    direction=BandDirection.HIGHER_IS_BETTER,
    tier_names=(
        "High Spend",
        "Mid-High Spend",
        "Mid Spend",
        "Low Spend",
        "Very Low Spend",
    ),
)

DEFAULT_SEGMENT_BANDS = SegmentBands()

_CONFIG_KEYS = {"as_of_date", "recency", "frequency", "monetary", "segments"}
_METRIC_SECTION_KEYS = {"thresholds"}
_SEGMENT_SECTION_KEYS = {"thresholds", "labels"}


def _check_section_keys(name: str, section: Mapping[str, Any], allowed: set[str]) -> None:
    unknown = set(section) - allowed
    if unknown:
        raise ConfigurationError(f"Unknown keys in {name} configuration: {sorted(unknown)}")


def _parse_as_of(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ConfigurationError(f"as_of_date must be an ISO date, got {value!r}") from exc


@dataclass(frozen=True)
class RFMConfig:
    """Configuration for a segmentation run.

    Attributes
    ----------
    as_of_date:
        Reference date recency is measured against. Never derived from the
        wall clock so that reruns are reproducible.
    recency, frequency, monetary:
        Score bands for each raw metric.
    segments:
        RFM-total bands producing the segment label.
    """

    as_of_date: date | None = None
    recency: ScoreBands = DEFAULT_RECENCY_BANDS
    frequency: ScoreBands = DEFAULT_FREQUENCY_BANDS
    monetary: ScoreBands = DEFAULT_MONETARY_BANDS
    segments: SegmentBands = DEFAULT_SEGMENT_BANDS

    def __post_init__(self) -> None:
        """Normalise ``as_of_date`` to a calendar date."""
        object.__setattr__(self, "as_of_date", _parse_as_of(self.as_of_date))

    def bands_for(self, metric: str) -> ScoreBands:
        """Return the bands of ``metric`` ("recency", "frequency" or "monetary")."""
        if metric not in ("recency", "frequency", "monetary"):
            raise ValueError(
                f"Unknown metric {metric!r}; expected recency, frequency or monetary"
            )
        return getattr(self, metric)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> RFMConfig:
        """Build a config from a mapping, e.g. a parsed JSON document.

        Missing keys keep their defaults. Each metric section accepts a
        ``thresholds`` list; ``segments`` additionally accepts ``labels``.

        Examples
        --------
        >>> config = RFMConfig.from_mapping(
        ...     {"as_of_date": "2020-12-01", "recency": {"thresholds": [15, 60, 120, 180]}}
        ... )
        >>> config.recency.score(20)
        4
        """
        unknown = set(payload) - _CONFIG_KEYS
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")

        defaults = cls()
        overrides: dict[str, Any] = {"as_of_date": payload.get("as_of_date")}
        for metric in ("recency", "frequency", "monetary"):
            section = payload.get(metric)
            if section is None:
                continue
            if not isinstance(section, Mapping) or "thresholds" not in section:
                raise ConfigurationError(
                    f"{metric} configuration must be a mapping with 'thresholds'"
                )
            _check_section_keys(metric, section, _METRIC_SECTION_KEYS)
            thresholds = section["thresholds"]
            if not _is_list(thresholds):
                raise ConfigurationError(f"{metric} thresholds must be a list")
            overrides[metric] = defaults.bands_for(metric).with_thresholds(thresholds)

        segments = payload.get("segments")
        if segments is not None:
            if not isinstance(segments, Mapping):
                raise ConfigurationError("segments configuration must be a mapping")
            _check_section_keys("segments", segments, _SEGMENT_SECTION_KEYS)
            overrides["segments"] = SegmentBands(
                thresholds=segments.get("thresholds", defaults.segments.thresholds),
                labels=segments.get("labels", defaults.segments.labels),
            )
        return cls(**overrides)

    @classmethod
    def from_json(cls, path: str | Path) -> RFMConfig:
        """Load a config from a JSON file (see :meth:`from_mapping`)."""
        with Path(path).open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
        if not isinstance(payload, Mapping):
            raise ConfigurationError(f"Expected a JSON object in {path}")
        return cls.from_mapping(payload)

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation of the config."""
        payload: dict[str, Any] = {
            "as_of_date": self.as_of_date.isoformat() if self.as_of_date else None,
        }
        for metric in ("recency", "frequency", "monetary"):
            payload[metric] = {
                "thresholds": [
                    int(t) if t == t.to_integral_value() else float(t)
                    for t in self.bands_for(metric).thresholds
                ]
            }
        payload["segments"] = {
            "thresholds": list(self.segments.thresholds),
            "labels": list(self.segments.labels),
        }
        return payload
