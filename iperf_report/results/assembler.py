"""Attach server metadata and provenance to summarized streams."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

from .models import Direction, MergedStream, MetricSummary, RunConfiguration, ServerIdentity, TestResult

IDENTITY_ATTRS = ("instance_id", "os", "provider", "provider_id", "region", "service", "service_id")


def _parse_hostname(hostname: str):
    pieces = hostname.strip().split(":")
    port = None
    if len(pieces) > 1 and pieces[1].isdigit() and int(pieces[1]) > 0:
        port = int(pieces[1])
    return pieces[0], port


def _resolve_attr(
    attr: str,
    index: int,
    overrides: Mapping[str, Sequence[Optional[str]]],
    defaults: Mapping[str, Optional[str]],
) -> Optional[str]:
    values = overrides.get(attr) or []
    candidates = [
        values[index] if index < len(values) else None,
        values[0] if values else None,
        defaults.get(f"meta_{attr}"),
        defaults.get(f"meta_compute_{attr}"),
    ]
    for candidate in candidates:
        if candidate:
            return candidate
    return None


def resolve_servers(
    hostnames: Sequence[str],
    overrides: Optional[Mapping[str, Sequence[Optional[str]]]] = None,
    defaults: Optional[Mapping[str, Optional[str]]] = None,
) -> Dict[str, ServerIdentity]:
    """Build server identities, keyed by the hostname string as given.

    ``overrides`` maps an identity attribute to per-server values; a server
    without its own value falls back to the first server's value, then to the
    ``meta_<attr>`` and ``meta_compute_<attr>`` defaults.
    """
    overrides = overrides or {}
    defaults = defaults or {}
    servers: Dict[str, ServerIdentity] = {}
    for index, hostname in enumerate(hostnames):
        host, port = _parse_hostname(hostname)
        identity = ServerIdentity(hostname=host, port=port)
        for attr in IDENTITY_ATTRS:
            setattr(identity, attr, _resolve_attr(attr, index, overrides, defaults))
        servers[hostname] = identity
    return servers


def _matches(value: Optional[str], other: Optional[str]) -> bool:
    return value is not None and other is not None and value == other


def provenance_flags(server: ServerIdentity, meta: Mapping[str, Optional[str]]) -> Dict[str, bool]:
    same_provider = _matches(server.provider_id, meta.get("meta_provider_id"))
    same_service = same_provider and _matches(server.service_id, meta.get("meta_compute_service_id"))
    return {
        "same_provider": same_provider,
        "same_service": same_service,
        "same_region": same_service and _matches(server.region, meta.get("meta_region")),
        "same_instance_id": same_service and _matches(server.instance_id, meta.get("meta_instance_id")),
        "same_os": _matches(server.os, meta.get("meta_os")),
    }


def assemble_result(
    direction: Direction,
    stream: MergedStream,
    summaries: Dict[str, MetricSummary],
    server: ServerIdentity,
    config: RunConfiguration,
    started: datetime,
    stopped: datetime,
    command: str,
) -> TestResult:
    jitter_values: Optional[List[float]] = None
    loss_values: Optional[List[float]] = None
    if config.udp:
        jitter_values = stream.values("jitter") or None
        loss_values = stream.values("loss") or None

    return TestResult(
        direction=direction,
        bandwidth_values=stream.values("bandwidth"),
        jitter_values=jitter_values,
        loss_values=loss_values,
        transfer_total=stream.transfer_total,
        concurrency=stream.concurrency,
        server_identity=server,
        test_started=started,
        test_stopped=stopped,
        command_used=command,
        summaries=summaries,
        cpu_client=stream.cpu_host,
        cpu_server=stream.cpu_remote,
        **provenance_flags(server, config.meta),
    )
