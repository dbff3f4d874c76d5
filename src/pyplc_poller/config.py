"""Poller configuration: model, validation, duration parsing, connection URL and TOML loading."""

import logging
import math
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from .errors import ConfigError, ConfigErrorKind
from .types import MetricDefinition, MetricFieldDefinition

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMAS: frozenset[str] = frozenset(
    {"ads", "bacnet-ip", "c-bus", "eip", "knxnet-ip", "modbus-tcp", "opcua", "s7"}
)

DEFAULT_TIMEOUT_S = 10.0

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str | int | float) -> float:
    """
    Parse a duration into seconds.

    Numbers are taken as seconds; strings use Go-style units ("10s", "250ms", "1m30s").
    Raises ValueError for anything else.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return _finite(float(value), value)
    s = value.strip()
    if not s:
        raise ValueError("Duration cannot be empty")
    try:
        seconds = float(s)
    except ValueError:
        pass
    else:
        return _finite(seconds, value)
    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(s):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos != len(s) or pos == 0:
        raise ValueError(f"Invalid duration: {value!r}")
    return _finite(total, value)


def _finite(seconds: float, value: object) -> float:
    if not math.isfinite(seconds):
        raise ValueError(f"Duration must be finite: {value!r}")
    return seconds


def build_connection_url(
    schema: str,
    domain_name: str,
    parameters: Sequence[Mapping[str, Any]] = (),
) -> str:
    """
    Build "<schema>://<domain_name>[?k1=v1&k2=v2...]".

    Parameters keep their order: table by table, key by key within a table.
    """
    url = f"{schema}://{domain_name}"
    pairs = [f"{key}={value}" for table in parameters for key, value in table.items()]
    if pairs:
        url += "?" + "&".join(pairs)
    return url


@dataclass
class PollerConfig:
    """Settings for one poller instance (one controller)."""

    schema: str = ""
    domain_name: str = ""
    parameters: list[dict[str, str]] = field(default_factory=list)
    timeout: float = DEFAULT_TIMEOUT_S
    metrics: list[MetricDefinition] = field(default_factory=list)

    def validate(self) -> None:
        """Raise ConfigError if required settings are missing or invalid."""
        if not self.schema:
            raise ConfigError(ConfigErrorKind.MISSING_SCHEMA, "'schema' has to be specified")
        if not self.domain_name:
            raise ConfigError(ConfigErrorKind.MISSING_DOMAIN, "'domain_name' has to be specified")
        if not self.metrics:
            raise ConfigError(ConfigErrorKind.NO_METRICS, "No metric defined")
        if self.schema.lower() not in SUPPORTED_SCHEMAS:
            raise ConfigError(
                ConfigErrorKind.UNSUPPORTED_SCHEMA,
                f"Unsupported protocol type {self.schema!r}; expected one of {sorted(SUPPORTED_SCHEMAS)}",
            )
        if not math.isfinite(self.timeout) or self.timeout <= 0:
            raise ConfigError(
                ConfigErrorKind.INVALID_TIMEOUT,
                f"'timeout' must be a positive finite number of seconds, got {self.timeout}",
            )

    @property
    def url(self) -> str:
        return build_connection_url(self.schema.lower(), self.domain_name, self.parameters)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PollerConfig":
        """
        Build a config from parsed TOML/JSON-like data.

        Keys: schema, domain_name, parameters (list of tables), timeout (seconds
        or duration string), metric (list of {name, tags, fields: [{name, address}]}).
        """
        try:
            parameters = [
                {str(k): str(v) for k, v in _as_mapping(table, "parameters entry").items()}
                for table in _as_list(data.get("parameters", []), "parameters")
            ]
            timeout = parse_duration(data.get("timeout", DEFAULT_TIMEOUT_S))
            metrics = [_parse_metric(m) for m in _as_list(data.get("metric", []), "metric")]
        except (TypeError, ValueError) as e:
            raise ConfigError(ConfigErrorKind.INVALID_CONFIG, str(e)) from e
        return cls(
            schema=str(data.get("schema", "") or ""),
            domain_name=str(data.get("domain_name", "") or ""),
            parameters=parameters,
            timeout=timeout,
            metrics=metrics,
        )


def _as_list(value: Any, what: str) -> list[Any]:
    if not isinstance(value, list):
        raise TypeError(f"{what!r} must be a list, got {type(value).__name__}")
    return value


def _as_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"{what} must be a table, got {type(value).__name__}")
    return value


def _parse_metric(raw: Any) -> MetricDefinition:
    entry = _as_mapping(raw, "metric entry")
    tags = {str(k): str(v) for k, v in _as_mapping(entry.get("tags", {}), "metric tags").items()}
    fields = []
    for f in _as_list(entry.get("fields", []), "fields"):
        fd = _as_mapping(f, "field entry")
        fields.append(MetricFieldDefinition(name=str(fd.get("name", "") or ""), address=str(fd.get("address", "") or "")))
    return MetricDefinition(name=str(entry.get("name", "") or ""), fields=tuple(fields), tags=tags)


def load_config(path: str | Path) -> PollerConfig:
    """Load a PollerConfig from a TOML file. Raises ConfigError if the file cannot be read or parsed."""
    p = Path(path)
    try:
        with p.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(ConfigErrorKind.INVALID_CONFIG, f"Config file not found: {p}") from None
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(ConfigErrorKind.INVALID_CONFIG, f"Invalid TOML in {p}: {e}") from e
    logger.debug("Loaded config from %s", p)
    return PollerConfig.from_dict(data)
