"""Combine concurrently-run connections into one aggregate stream."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .models import ConnectionGroup, IntervalSample, MergedStream, RawStream


def _add(total: Optional[float], value: Optional[float]) -> Optional[float]:
    if value is None:
        return total
    return value if total is None else total + value


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


class OrdinalAccumulator:
    """Sums per-interval samples by their position within each connection.

    Connections do not report identical sample counts or aligned start times,
    so samples are matched by ordinal. An index only exists if at least one
    connection reported a sample there. Jitter and loss are accumulated, not
    averaged.
    """

    def __init__(self) -> None:
        self._slots: Dict[int, IntervalSample] = {}
        self.concurrency = 0

    def add_stream(self, stream: RawStream) -> None:
        if not stream.samples:
            return
        self.concurrency += 1
        for index, sample in enumerate(stream.samples):
            slot = self._slots.get(index)
            if slot is None:
                self._slots[index] = IntervalSample(
                    start_offset_sec=sample.start_offset_sec,
                    bandwidth_mbps=sample.bandwidth_mbps,
                    transfer_mb=sample.transfer_mb,
                    jitter_ms=sample.jitter_ms,
                    loss_pct=sample.loss_pct,
                )
                continue
            slot.start_offset_sec = min(slot.start_offset_sec, sample.start_offset_sec)
            slot.bandwidth_mbps += sample.bandwidth_mbps
            slot.transfer_mb += sample.transfer_mb
            slot.jitter_ms = _add(slot.jitter_ms, sample.jitter_ms)
            slot.loss_pct = _add(slot.loss_pct, sample.loss_pct)

    def samples(self) -> List[IntervalSample]:
        return [self._slots[index] for index in sorted(self._slots)]


def merge_streams(streams: Iterable[RawStream]) -> MergedStream:
    accumulator = OrdinalAccumulator()
    cpu_host: List[float] = []
    cpu_remote: List[float] = []
    for stream in streams:
        accumulator.add_stream(stream)
        if stream.cpu_host is not None:
            cpu_host.append(stream.cpu_host)
        if stream.cpu_remote is not None:
            cpu_remote.append(stream.cpu_remote)
    return MergedStream(
        samples=accumulator.samples(),
        concurrency=accumulator.concurrency,
        cpu_host=_mean(cpu_host),
        cpu_remote=_mean(cpu_remote),
    )


def merge_group(group: ConnectionGroup) -> MergedStream:
    return merge_streams(group.streams)
