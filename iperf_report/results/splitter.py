"""Upload/download phase detection for bidirectional legacy runs."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .models import Direction, RawStream
from .parsers import LegacyRecord

LOGGER = logging.getLogger(__name__)

# iperf restarts its interval clock when the reverse sub-test begins
DIRECTION_CHANGE_THRESHOLD_SEC = 5.0


class _State(Enum):
    SEEKING_FIRST = "seeking_first"
    IN_PHASE = "in_phase"


class DirectionSplitter:
    """Scan an ordered record sequence and split it into at most two phases.

    The first phase is always ``up``. A transition to ``down`` happens once,
    when a record's start offset falls back by at least ``threshold_sec``
    compared to the previous record or when the peer address changes. The
    heuristic can mislabel phases on jittery clocks; no attempt is made to
    detect that.
    """

    def __init__(self, threshold_sec: float = DIRECTION_CHANGE_THRESHOLD_SEC):
        self.threshold_sec = threshold_sec

    def split(self, records: Sequence[LegacyRecord]) -> Dict[Direction, List[RawStream]]:
        phases: Dict[Direction, Dict[str, RawStream]] = {}
        state = _State.SEEKING_FIRST
        direction = Direction.UP
        last_start: Optional[float] = None
        last_peer: Optional[str] = None

        for record in records:
            start = record.sample.start_offset_sec
            if state is _State.SEEKING_FIRST:
                state = _State.IN_PHASE
            elif direction is Direction.UP and self._is_transition(
                last_start, start, last_peer, record.peer_address
            ):
                LOGGER.debug(
                    "Direction change detected at offset %.1f (previous %.1f, peer %s)",
                    start,
                    last_start,
                    record.peer_address,
                )
                direction = Direction.DOWN

            streams = phases.setdefault(direction, {})
            stream = streams.get(record.connection_id)
            if stream is None:
                stream = RawStream(connection_id=record.connection_id, peer_address=record.peer_address)
                streams[record.connection_id] = stream
            stream.samples.append(record.sample)
            last_start = start
            last_peer = record.peer_address

        return {phase: list(streams.values()) for phase, streams in phases.items()}

    def _is_transition(
        self,
        last_start: Optional[float],
        start: float,
        last_peer: Optional[str],
        peer: str,
    ) -> bool:
        if last_peer is not None and peer != last_peer:
            return True
        return last_start is not None and (last_start - start) >= self.threshold_sec
