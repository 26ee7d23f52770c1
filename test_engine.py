"""End-to-end tests of the per-server results pipeline."""

import json

import pytest

from conftest import STARTED, STOPPED, legacy_output, make_capture, structured_output
from iperf_report.results import RunAccumulator, RunConfiguration, process_server
from iperf_report.results.engine import build_groups
from iperf_report.results.models import Direction


def _process(capture, config, server):
    accumulator = RunAccumulator()
    succeeded = process_server(capture, server, config, accumulator)
    return succeeded, accumulator


def test_single_connection_stream_mode(run_config, server):
    capture = make_capture({"0": legacy_output(range(10))})
    succeeded, accumulator = _process(capture, run_config, server)

    assert succeeded
    [result] = accumulator.results
    assert result.direction is Direction.UP
    assert result.bandwidth_values == [1000.0] * 10
    assert result.summaries["bandwidth"].mean == 1000.0
    assert result.summaries["bandwidth"].stdev == 0.0
    assert result.concurrency == 1
    assert result.jitter_values is None
    assert result.test_started == STARTED
    assert result.test_stopped == STOPPED
    assert result.command_used.startswith("iperf -y C")


def test_warmup_excludes_leading_samples(server):
    config = RunConfiguration(interval=1.0, warmup=5)
    succeeded, accumulator = _process(make_capture({"0": legacy_output(range(10))}), config, server)

    assert succeeded
    [result] = accumulator.results
    assert len(result.bandwidth_values) == 5
    assert result.transfer_total == pytest.approx(5 * 125_000_000 / 1_048_576)


def test_bidirectional_run_is_split(run_config, server):
    raw = legacy_output(range(6)) + legacy_output(range(6))
    _, accumulator = _process(make_capture({"0": raw}), run_config, server)

    assert [r.direction for r in accumulator.results] == [Direction.UP, Direction.DOWN]
    assert [len(r.bandwidth_values) for r in accumulator.results] == [6, 6]


def test_structured_datagram_run(udp_config, server):
    raw = structured_output(
        [
            {"start": float(i), "bits_per_second": 2_000_000, "bytes": 250_000, "jitter_ms": 1.5, "lost_percent": 0.2}
            for i in range(5)
        ]
    )
    _, accumulator = _process(make_capture({"5201": raw}, version="3.9"), udp_config, server)

    [result] = accumulator.results
    assert result.bandwidth_values == [2.0] * 5
    assert result.summaries["jitter"].mean == pytest.approx(1.5)
    assert result.summaries["loss"].mean == pytest.approx(0.2)
    assert result.jitter_values == [1.5] * 5


def test_structured_reverse_run_is_download(server):
    config = RunConfiguration(interval=1.0, reverse=True)
    raw = structured_output([{"start": float(i), "bits_per_second": 1e6, "bytes": 1} for i in range(5)])
    _, accumulator = _process(make_capture({"5201": raw}, version="3.9"), config, server)

    assert accumulator.results[0].direction is Direction.DOWN


def test_concurrent_ports_are_merged(run_config, server):
    raw = structured_output([{"start": float(i), "bits_per_second": 100e6, "bytes": 1} for i in range(5)])
    capture = make_capture({"5201": raw, "5202": raw}, version="3.9")
    _, accumulator = _process(capture, run_config, server)

    [result] = accumulator.results
    assert result.bandwidth_values == [200.0] * 5
    assert result.concurrency == 2


def test_legacy_parallel_connections_are_merged(run_config, server):
    raw = "".join(legacy_output([start], connection=c) for start in range(5) for c in ("3", "4", "5"))
    _, accumulator = _process(make_capture({"0": raw}), run_config, server)

    [result] = accumulator.results
    assert result.concurrency == 3
    assert result.bandwidth_values == [3000.0] * 5


def test_insufficient_samples_are_discarded_silently(run_config, server):
    succeeded, accumulator = _process(make_capture({"0": legacy_output(range(3))}), run_config, server)

    assert succeeded
    assert accumulator.results == []
    assert accumulator.succeeded == ["iperf.example.net"]


@pytest.mark.parametrize("count, kept", [(4, 0), (5, 1)])
def test_minimum_sample_boundary(run_config, server, count, kept):
    _, accumulator = _process(make_capture({"0": legacy_output(range(count))}), run_config, server)
    assert len(accumulator.results) == kept


@pytest.mark.parametrize("outputs", [{"0": ""}, {"0": "   \n"}, {}])
def test_missing_output_marks_server_failed(run_config, server, outputs):
    succeeded, accumulator = _process(make_capture(outputs), run_config, server)

    assert not succeeded
    assert accumulator.failed == ["iperf.example.net"]
    assert accumulator.results == []


def test_malformed_port_does_not_block_others(run_config, server):
    good = structured_output([{"start": float(i), "bits_per_second": 1e6, "bytes": 1} for i in range(5)])
    capture = make_capture({"5201": "{broken", "5202": good}, version="3.9")
    _, accumulator = _process(capture, run_config, server)

    [result] = accumulator.results
    assert result.concurrency == 1


def test_truncated_legacy_line_is_ignored(run_config, server):
    raw = legacy_output(range(6)) + "20240501120000,10.0.0.2,48152,10.0.0.1,5001,3,6.0-7.0,125000000\n"
    succeeded, accumulator = _process(make_capture({"0": raw}), run_config, server)

    assert succeeded
    [result] = accumulator.results
    assert result.bandwidth_values == [1000.0] * 6


def test_structured_garbage_intervals_are_ignored(run_config, server):
    raw = json.dumps(
        {"intervals": ["x", {"sum": []}] + [{"sum": {"start": float(i), "bits_per_second": 1e6, "bytes": 1}} for i in range(5)]}
    )
    succeeded, accumulator = _process(make_capture({"5201": raw}, version="3.9"), run_config, server)

    assert succeeded
    [result] = accumulator.results
    assert result.bandwidth_values == [1.0] * 5


def test_build_groups_labels_server(run_config):
    groups = build_groups(make_capture({"0": legacy_output(range(6))}), run_config)
    assert [(g.server, g.direction) for g in groups] == [("iperf.example.net", Direction.UP)]


def test_result_record_serializes_losslessly(udp_config, server):
    raw = legacy_output(range(6), bits=2_000_000, jitter=1.0, loss=0.5)
    _, accumulator = _process(make_capture({"0": raw}), udp_config, server)

    record = accumulator.to_records()[0]
    assert json.loads(json.dumps(record)) == record
    assert record["bandwidth_direction"] == "up"
    assert record["iperf_server"] == "iperf.example.net"
    assert record["iperf_cmd"].startswith("iperf")
    assert record["jitter_p10"] == 1.0
    assert record["test_started"] == "2024-05-01 12:00:00"
    assert record["iperf_server_region"] == "us-east-1"
