"""Ingestion and statistics engine for iperf interval output."""

from .engine import build_groups, process_server
from .models import (
    ConnectionGroup,
    Direction,
    IntervalSample,
    MergedStream,
    MetricSummary,
    RawStream,
    RunAccumulator,
    RunConfiguration,
    ServerCapture,
    ServerIdentity,
    TestResult,
    Window,
)

__all__ = [
    "build_groups",
    "process_server",
    "ConnectionGroup",
    "Direction",
    "IntervalSample",
    "MergedStream",
    "MetricSummary",
    "RawStream",
    "RunAccumulator",
    "RunConfiguration",
    "ServerCapture",
    "ServerIdentity",
    "TestResult",
    "Window",
]
