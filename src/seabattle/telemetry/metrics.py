"""Metrics helper utilities."""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping, Union

from opentelemetry import metrics as otel_metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.metrics import Counter, Histogram, Meter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader

if TYPE_CHECKING:  # pragma: no cover
    from .config import TelemetryConfig

_METER_PROVIDER: MeterProvider | None = None
_INSTRUMENTS: dict[str, Union[Counter, Histogram]] = {}

# Metric names with these suffixes are distributions rather than running totals.
_HISTOGRAM_SUFFIXES = ("_seconds", "_ms")

MetricAttributes = Mapping[str, Union[str, bool, int, float]]


def get_meter(name: str = "seabattle") -> Meter:
    """Return a meter that follows whichever provider is installed later."""
    return otel_metrics.get_meter(name)


def init_metrics(config: TelemetryConfig) -> MeterProvider:
    global _METER_PROVIDER

    if _METER_PROVIDER is not None:
        return _METER_PROVIDER

    readers = []
    if config.otlp_endpoint:
        exporter = OTLPMetricExporter(endpoint=config.otlp_endpoint, insecure=True)
        readers.append(PeriodicExportingMetricReader(exporter, export_interval_millis=5000))

    provider = MeterProvider(resource=config.resource(), metric_readers=readers)
    otel_metrics.set_meter_provider(provider)
    _METER_PROVIDER = provider
    return provider


def record_game_metric(name: str, value: float, attrs: MetricAttributes | None = None) -> None:
    """Add to a counter, or record into a histogram for duration-style names."""
    instrument = _INSTRUMENTS.get(name)
    if instrument is None:
        meter = get_meter()
        if name.endswith(_HISTOGRAM_SUFFIXES):
            instrument = meter.create_histogram(name)
        else:
            instrument = meter.create_counter(name)
        _INSTRUMENTS[name] = instrument
    if name.endswith(_HISTOGRAM_SUFFIXES):
        instrument.record(value, attributes=attrs or {})
    else:
        instrument.add(value, attributes=attrs or {})
