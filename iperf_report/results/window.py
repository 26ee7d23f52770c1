"""Warm-up and tail trimming of merged streams."""

from __future__ import annotations

from dataclasses import replace

from .models import MergedStream, Window


def apply_window(stream: MergedStream, window: Window) -> MergedStream:
    """Drop samples starting before the warm-up cutoff, then the final ``drop_final`` ones.

    A stream that already carries ``window`` is returned unchanged.
    """
    if stream.window == window:
        return stream

    samples = [
        sample
        for sample in stream.samples
        if not window.warmup_sec or sample.start_offset_sec >= window.warmup_sec
    ]
    if window.drop_final > 0 and len(samples) > window.drop_final:
        samples = samples[: -window.drop_final]
    return replace(stream, samples=samples, window=window)
