"""Parsers for the two raw iperf output formats."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Union

from .models import IntervalSample, RawStream, RunConfiguration

LOGGER = logging.getLogger(__name__)

BITS_PER_MEGABIT = 1_000_000
BYTES_PER_MEGABYTE = 1024 * 1024

RawInput = Union[str, bytes, Mapping[str, Any]]

# Field positions of the comma separated (-y C) report
FIELD_PEER = 3
FIELD_CONNECTION = 5
FIELD_SPAN = 6
FIELD_BYTES = 7
FIELD_BITS = 8
FIELD_JITTER = 9
FIELD_LOSS = 12


class IntervalFormatError(ValueError):
    """Raised when raw output cannot be read as text at all."""


@dataclass
class LegacyRecord:
    peer_address: str
    connection_id: str
    sample: IntervalSample


def _as_text(raw: RawInput) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        try:
            return bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise IntervalFormatError(f"raw iperf output is not valid UTF-8: {exc}") from exc
    raise TypeError(f"unsupported raw iperf output type: {type(raw).__name__}")


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _section(parent: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = parent.get(key)
    return value if isinstance(value, Mapping) else {}


class LegacyFormat:
    """Comma separated interval records written by iperf 2."""

    name = "legacy"

    def parse(self, raw: RawInput, config: RunConfiguration) -> List[LegacyRecord]:
        records: List[LegacyRecord] = []
        for line in _as_text(raw).splitlines():
            record = self.parse_line(line, config)
            if record is not None:
                records.append(record)
        LOGGER.debug("Parsed %d interval records from legacy output", len(records))
        return records

    def parse_line(self, line: str, config: RunConfiguration) -> Optional[LegacyRecord]:
        pieces = [piece.strip() for piece in line.strip().split(",")]
        # the bits field is the last one every interval record carries
        if len(pieces) <= FIELD_BITS:
            return None

        span = pieces[FIELD_SPAN].split("-")
        if len(span) != 2:
            return None
        start = _to_float(span[0])
        end = _to_float(span[1])
        transferred = _to_float(pieces[FIELD_BYTES])
        bits = _to_float(pieces[FIELD_BITS])
        if start is None or end is None or transferred is None or bits is None:
            return None
        # partial and summary lines have a different span or no data
        if abs((end - start) - config.interval) > 1e-6 or transferred <= 0:
            return None

        connection_id = pieces[FIELD_CONNECTION]
        if connection_id.startswith("-"):
            return None

        sample = IntervalSample(
            start_offset_sec=start,
            bandwidth_mbps=bits / BITS_PER_MEGABIT,
            transfer_mb=transferred / BYTES_PER_MEGABYTE,
        )
        if config.udp:
            if len(pieces) > FIELD_JITTER:
                sample.jitter_ms = _to_float(pieces[FIELD_JITTER])
            if len(pieces) > FIELD_LOSS:
                sample.loss_pct = _to_float(pieces[FIELD_LOSS])
        return LegacyRecord(
            peer_address=pieces[FIELD_PEER],
            connection_id=connection_id,
            sample=sample,
        )


class StructuredFormat:
    """JSON documents written by iperf 3 (--json)."""

    name = "structured"

    def parse(
        self, raw: RawInput, config: RunConfiguration, connection_id: str = "0"
    ) -> RawStream:
        stream = RawStream(connection_id=connection_id)
        payload = self._load(raw, connection_id)
        if payload is None:
            return stream

        intervals = payload.get("intervals")
        if not isinstance(intervals, list) or not intervals:
            LOGGER.warning("iperf3 output for connection %s has no intervals", connection_id)
            return stream

        end_section = _section(payload, "end")
        end_sum = _section(end_section, "sum")
        fallback_jitter = _to_float(end_sum.get("jitter_ms"))
        fallback_loss = _to_float(end_sum.get("lost_percent"))
        cpu = _section(end_section, "cpu_utilization_percent")
        stream.cpu_host = _to_float(cpu.get("host_total"))
        stream.cpu_remote = _to_float(cpu.get("remote_total"))

        skipped = 0
        for interval in intervals:
            summary = interval.get("sum") if isinstance(interval, Mapping) else None
            if not isinstance(summary, Mapping):
                skipped += 1
                continue
            start = _to_float(summary.get("start"))
            bits = _to_float(summary.get("bits_per_second"))
            if start is None or bits is None:
                continue
            transferred = _to_float(summary.get("bytes")) or 0.0
            sample = IntervalSample(
                start_offset_sec=start,
                bandwidth_mbps=bits / BITS_PER_MEGABIT,
                transfer_mb=transferred / BYTES_PER_MEGABYTE,
            )
            if config.udp:
                jitter = _to_float(summary.get("jitter_ms"))
                loss = _to_float(summary.get("lost_percent"))
                sample.jitter_ms = jitter if jitter is not None else fallback_jitter
                sample.loss_pct = loss if loss is not None else fallback_loss
            stream.samples.append(sample)

        if skipped:
            LOGGER.warning(
                "Skipped %d malformed intervals in iperf3 output for connection %s", skipped, connection_id
            )

        LOGGER.debug(
            "Parsed %d intervals from iperf3 output for connection %s",
            len(stream.samples),
            connection_id,
        )
        return stream

    @staticmethod
    def _load(raw: RawInput, connection_id: str) -> Optional[Mapping[str, Any]]:
        if isinstance(raw, Mapping):
            return raw
        text = _as_text(raw)
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Unable to decode iperf3 output for connection %s: %s", connection_id, exc)
            return None
        if not isinstance(payload, dict):
            LOGGER.warning("Unexpected iperf3 document for connection %s", connection_id)
            return None
        if payload.get("error"):
            LOGGER.warning("iperf3 reported an error for connection %s: %s", connection_id, payload["error"])
        return payload


def select_format(version: Optional[str]) -> Union[LegacyFormat, StructuredFormat]:
    """Pick the parser matching the iperf version that produced the output."""
    if version and version.strip().startswith("3"):
        return StructuredFormat()
    return LegacyFormat()
