"""Shared fixtures for the test modules."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Iterable, Optional

import pytest

from iperf_report.config import load_config
from iperf_report.results.models import RunConfiguration, ServerCapture, ServerIdentity

STARTED = datetime(2024, 5, 1, 12, 0, 0)
STOPPED = datetime(2024, 5, 1, 12, 0, 30)


def legacy_line(
    start: float,
    bits: float = 1_000_000_000,
    transferred: float = 125_000_000,
    peer: str = "10.0.0.1",
    connection: str = "3",
    interval: float = 1.0,
    jitter: Optional[float] = None,
    loss: Optional[float] = None,
) -> str:
    fields = [
        "20240501120000",
        "10.0.0.2",
        "48152",
        peer,
        "5001",
        connection,
        f"{start:.1f}-{start + interval:.1f}",
        str(int(transferred)),
        str(int(bits)),
    ]
    if jitter is not None or loss is not None:
        fields += [str(jitter or 0.0), "2", "1000", str(loss or 0.0), "0"]
    return ",".join(fields)


def legacy_output(starts: Iterable[float], **kwargs) -> str:
    return "\n".join(legacy_line(start, **kwargs) for start in starts) + "\n"


def structured_output(intervals, end_sum=None, cpu=None) -> str:
    payload = {
        "start": {"version": "iperf 3.9"},
        "intervals": [{"streams": [], "sum": item} for item in intervals],
        "end": {"sum": end_sum or {}},
    }
    if cpu is not None:
        payload["end"]["cpu_utilization_percent"] = cpu
    return json.dumps(payload)


def make_capture(outputs, version: Optional[str] = "2.0.13", hostname: str = "iperf.example.net") -> ServerCapture:
    return ServerCapture(
        hostname=hostname,
        outputs=outputs,
        started=STARTED,
        stopped=STOPPED,
        command=f"iperf -y C -c {hostname}",
        version=version,
    )


@pytest.fixture
def run_config() -> RunConfiguration:
    return RunConfiguration(interval=1.0)


@pytest.fixture
def udp_config() -> RunConfiguration:
    return RunConfiguration(udp=True, interval=1.0)


@pytest.fixture
def server() -> ServerIdentity:
    return ServerIdentity(hostname="iperf.example.net", provider_id="aws", service_id="ec2", region="us-east-1")


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "paths:",
                "  data_dir: data",
                "  logs_dir: logs",
                "iperf:",
                "  interval: 1",
                "  time: 20",
                "  warmup: 2",
                "  parallel: '[cpus] / 2'",
                "meta:",
                "  provider_id: aws",
                "  compute_service_id: ec2",
                "  region: us-east-1",
                "  os: Ubuntu 22.04",
                "servers:",
                "  hosts:",
                "    - a.example.net",
                "    - b.example.net:5202",
                "  region:",
                "    - us-east-1",
                "    - eu-west-1",
            ]
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def app_config(config_file, monkeypatch):
    monkeypatch.setattr("iperf_report.expressions.detect_cpus", lambda: 4)
    return load_config(str(config_file))
