"""Shared dataclasses for interval samples and test results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
METRICS = ("bandwidth", "jitter", "loss")


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"


@dataclass
class IntervalSample:
    """One measurement for one time slice of one connection."""

    start_offset_sec: float
    bandwidth_mbps: float
    transfer_mb: float = 0.0
    jitter_ms: Optional[float] = None
    loss_pct: Optional[float] = None


@dataclass
class RawStream:
    connection_id: str
    samples: List[IntervalSample] = field(default_factory=list)
    peer_address: Optional[str] = None
    cpu_host: Optional[float] = None
    cpu_remote: Optional[float] = None


@dataclass
class ConnectionGroup:
    """Streams for one server and one direction, across concurrent connections."""

    server: str
    direction: Direction
    streams: List[RawStream] = field(default_factory=list)

    @property
    def concurrency(self) -> int:
        return sum(1 for stream in self.streams if stream.samples)


@dataclass(frozen=True)
class Window:
    warmup_sec: float = 0.0
    drop_final: int = 0


@dataclass
class MergedStream:
    samples: List[IntervalSample]
    concurrency: int
    window: Optional[Window] = None
    cpu_host: Optional[float] = None
    cpu_remote: Optional[float] = None

    def values(self, metric: str) -> List[float]:
        if metric == "bandwidth":
            return [sample.bandwidth_mbps for sample in self.samples]
        attr = "jitter_ms" if metric == "jitter" else "loss_pct"
        return [getattr(s, attr) for s in self.samples if getattr(s, attr) is not None]

    @property
    def transfer_total(self) -> float:
        return sum(sample.transfer_mb for sample in self.samples)


@dataclass
class MetricSummary:
    min: float
    max: float
    mean: float
    median: float
    p10: float
    p25: float
    p75: float
    p90: float
    stdev: float

    def as_fields(self, metric: str) -> Dict[str, float]:
        return {f"{metric}_{name}": value for name, value in vars(self).items()}


@dataclass
class ServerIdentity:
    hostname: str
    port: Optional[int] = None
    provider: Optional[str] = None
    provider_id: Optional[str] = None
    service: Optional[str] = None
    service_id: Optional[str] = None
    region: Optional[str] = None
    instance_id: Optional[str] = None
    os: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in vars(self).items() if value is not None}


@dataclass
class RunConfiguration:
    """Read-only run settings consumed by the results engine."""

    udp: bool = False
    interval: float = 1.0
    warmup: float = 0.0
    drop_final: int = 0
    parallel: int = 1
    reverse: bool = False
    tradeoff: bool = False
    meta: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def window(self) -> Window:
        return Window(warmup_sec=self.warmup or 0.0, drop_final=self.drop_final or 0)


@dataclass
class TestResult:
    """Finalized outcome for one (server, direction) pair."""

    __test__ = False

    direction: Direction
    bandwidth_values: List[float]
    transfer_total: float
    concurrency: int
    server_identity: ServerIdentity
    test_started: datetime
    test_stopped: datetime
    command_used: str
    summaries: Dict[str, MetricSummary] = field(default_factory=dict)
    jitter_values: Optional[List[float]] = None
    loss_values: Optional[List[float]] = None
    same_provider: bool = False
    same_service: bool = False
    same_region: bool = False
    same_instance_id: bool = False
    same_os: bool = False
    cpu_client: Optional[float] = None
    cpu_server: Optional[float] = None

    @property
    def iperf_server(self) -> str:
        return self.server_identity.hostname

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "bandwidth_direction": self.direction.value,
            "bandwidth_values": list(self.bandwidth_values),
            "transfer": self.transfer_total,
            "concurrency": self.concurrency,
            "iperf_server": self.iperf_server,
            "iperf_cmd": self.command_used,
        }
        if self.jitter_values is not None:
            record["jitter_values"] = list(self.jitter_values)
        if self.loss_values is not None:
            record["loss_values"] = list(self.loss_values)
        for metric, summary in self.summaries.items():
            record.update(summary.as_fields(metric))
        for attr, value in self.server_identity.as_dict().items():
            record[f"iperf_server_{attr}"] = value
        record.update(
            same_provider=self.same_provider,
            same_service=self.same_service,
            same_region=self.same_region,
            same_instance_id=self.same_instance_id,
            same_os=self.same_os,
            test_started=self.test_started.strftime(DATE_FORMAT),
            test_stopped=self.test_stopped.strftime(DATE_FORMAT),
        )
        if self.cpu_client is not None:
            record["cpu_client"] = self.cpu_client
        if self.cpu_server is not None:
            record["cpu_server"] = self.cpu_server
        return record


@dataclass
class ServerCapture:
    """Raw output captured for one server, keyed by connection (port)."""

    hostname: str
    outputs: Dict[str, Any]
    started: datetime
    stopped: datetime
    command: str
    version: Optional[str] = None


@dataclass
class RunAccumulator:
    """Results collected across every server tested in one invocation."""

    results: List[TestResult] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def add(self, result: TestResult) -> None:
        self.results.append(result)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    def to_records(self) -> List[Dict[str, Any]]:
        return [result.to_dict() for result in self.results]
