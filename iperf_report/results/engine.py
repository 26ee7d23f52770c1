"""Per-server pipeline: parse, split, merge, window, summarize, assemble."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .assembler import assemble_result
from .merger import merge_group
from .models import (
    ConnectionGroup,
    Direction,
    RawStream,
    RunAccumulator,
    RunConfiguration,
    ServerCapture,
    ServerIdentity,
    TestResult,
)
from .parsers import LegacyFormat, StructuredFormat, select_format
from .splitter import DirectionSplitter
from .stats import MIN_SAMPLES, summarize_stream
from .window import apply_window

LOGGER = logging.getLogger(__name__)


def _has_output(raw) -> bool:
    if raw is None:
        return False
    if isinstance(raw, (str, bytes, bytearray)):
        return bool(raw.strip())
    return bool(raw)


def build_groups(
    capture: ServerCapture,
    config: RunConfiguration,
    splitter: Optional[DirectionSplitter] = None,
) -> List[ConnectionGroup]:
    """Parse every captured output and group the streams by direction."""
    parser = select_format(capture.version)
    by_direction: Dict[Direction, List[RawStream]] = {}

    if isinstance(parser, StructuredFormat):
        direction = Direction.DOWN if config.reverse else Direction.UP
        for connection_id, raw in capture.outputs.items():
            if not _has_output(raw):
                continue
            stream = parser.parse(raw, config, connection_id=str(connection_id))
            by_direction.setdefault(direction, []).append(stream)
    else:
        splitter = splitter or DirectionSplitter()
        for connection_id, raw in capture.outputs.items():
            if not _has_output(raw):
                continue
            records = LegacyFormat().parse(raw, config)
            for direction, streams in splitter.split(records).items():
                for stream in streams:
                    if len(capture.outputs) > 1:
                        stream.connection_id = f"{connection_id}/{stream.connection_id}"
                    by_direction.setdefault(direction, []).append(stream)

    return [
        ConnectionGroup(server=capture.hostname, direction=direction, streams=streams)
        for direction, streams in by_direction.items()
    ]


def summarize_group(
    group: ConnectionGroup,
    server: ServerIdentity,
    config: RunConfiguration,
    capture: ServerCapture,
) -> Optional[TestResult]:
    stream = apply_window(merge_group(group), config.window)
    summaries = summarize_stream(stream, config.udp)
    if summaries is None:
        LOGGER.debug(
            "Discarding %s results for %s: %d samples after windowing (minimum %d)",
            group.direction.value,
            group.server,
            len(stream.samples),
            MIN_SAMPLES,
        )
        return None
    return assemble_result(
        direction=group.direction,
        stream=stream,
        summaries=summaries,
        server=server,
        config=config,
        started=capture.started,
        stopped=capture.stopped,
        command=capture.command,
    )


def process_server(
    capture: ServerCapture,
    server: ServerIdentity,
    config: RunConfiguration,
    accumulator: RunAccumulator,
    splitter: Optional[DirectionSplitter] = None,
) -> bool:
    """Turn one server's raw output into results appended to ``accumulator``.

    Returns False when the server produced no output at all.
    """
    if not any(_has_output(raw) for raw in capture.outputs.values()):
        LOGGER.error("iperf testing failed for server %s: no output captured", capture.hostname)
        accumulator.failed.append(capture.hostname)
        return False

    groups = build_groups(capture, config, splitter)
    added = 0
    for group in groups:
        result = summarize_group(group, server, config, capture)
        if result is None:
            continue
        accumulator.add(result)
        added += 1
        LOGGER.info(
            "Added %s result for %s (mean %.2f Mb/s over %d samples, concurrency %d)",
            result.direction.value,
            capture.hostname,
            result.summaries["bandwidth"].mean,
            len(result.bandwidth_values),
            result.concurrency,
        )

    accumulator.succeeded.append(capture.hostname)
    LOGGER.info("iperf testing completed for server %s (%d results)", capture.hostname, added)
    return True
