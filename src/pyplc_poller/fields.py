"""Flatten metric definitions into the field table and turn it into one batched read request."""

import dataclasses
import logging
from typing import Sequence

from .drivers.base import Connection, ReadRequest
from .errors import (
    ConfigError,
    ConfigErrorKind,
    ConnectionErrorKind,
    InvalidAddressError,
    PLCConnectionError,
    TransportError,
)
from .types import FieldMapping, MetricDefinition, MetricFieldDefinition

logger = logging.getLogger(__name__)

DEFAULT_MEASUREMENT = "plc4x"


def build_field_table(metrics: Sequence[MetricDefinition]) -> tuple[MetricFieldDefinition, ...]:
    """
    Flatten metric definitions into one declaration-ordered field table.

    Each field gets its FieldMapping (measurement, field, tags) attached. Field
    names are a single namespace across all metrics. Empty metric names default
    to "plc4x".

    Raises ConfigError for a metric without fields, an unnamed field, a duplicate
    field name, or an empty result.
    """
    table: list[MetricFieldDefinition] = []
    seen: set[str] = set()

    for metric in metrics:
        measurement = metric.name or DEFAULT_MEASUREMENT
        if not metric.fields:
            raise ConfigError(
                ConfigErrorKind.MISSING_MEASUREMENT_FIELDS,
                f"No fields defined for metric {measurement!r}",
                metric=measurement,
            )
        for f in metric.fields:
            if not f.name or not f.name.strip():
                raise ConfigError(
                    ConfigErrorKind.UNNAMED_FIELD,
                    f"Unnamed field in metric {measurement!r}",
                    metric=measurement,
                )
            if f.name in seen:
                raise ConfigError(
                    ConfigErrorKind.DUPLICATE_FIELD,
                    f"Duplicate field {f.name!r}",
                    metric=measurement,
                    field=f.name,
                )
            seen.add(f.name)
            mapping = FieldMapping(measurement=measurement, field=f.name, tags=dict(metric.tags))
            table.append(dataclasses.replace(f, mapping=mapping))

    if not table:
        raise ConfigError(ConfigErrorKind.NO_FIELDS_AT_ALL, "No fields defined in any metric")

    logger.debug("Field table built: %d fields from %d metrics", len(table), len(metrics))
    return tuple(table)


def build_read_request(connection: Connection, fields: Sequence[MetricFieldDefinition]) -> ReadRequest:
    """Register every field's (name, address) with the connection's builder and build the request."""
    builder = connection.read_request_builder()
    try:
        for f in fields:
            builder.add_tag_address(f.name, f.address)
        return builder.build()
    except (InvalidAddressError, TransportError, ValueError) as e:
        raise PLCConnectionError(
            ConnectionErrorKind.BUILD_FAILED,
            f"Error preparing read-request: {e}",
            cause=e,
        ) from e
