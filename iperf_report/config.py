"""Configuration loading helpers for the iperf report runner."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union
import platform
import yaml

from .expressions import evaluate_expression
from .results.models import RunConfiguration

NOT_SPECIFIED = "Not Specified"


@dataclass
class PathsConfig:
    data_dir: Path
    logs_dir: Path


@dataclass
class IperfConfig:
    binary: str = "iperf"
    udp: bool = False
    interval: int = 1
    time: int = 10
    warmup: int = 0
    drop_final: int = 0
    parallel: Union[int, str] = 1
    bandwidth: Optional[str] = "1M"
    len: Optional[str] = None
    mss: Optional[int] = None
    nodelay: bool = False
    num: Optional[str] = None
    tos: Optional[str] = None
    tradeoff: bool = False
    reverse: bool = False
    ttl: Optional[int] = 1
    window: Optional[str] = None
    zerocopy: bool = False
    timeout: Optional[int] = None

    @property
    def buffer_len(self) -> str:
        if self.len:
            return str(self.len)
        return "1470" if self.udp else "8K"


@dataclass
class MetaConfig:
    provider: Optional[str] = NOT_SPECIFIED
    provider_id: Optional[str] = None
    compute_service: Optional[str] = NOT_SPECIFIED
    compute_service_id: Optional[str] = None
    region: Optional[str] = None
    instance_id: Optional[str] = NOT_SPECIFIED
    os: Optional[str] = field(default_factory=lambda: f"{platform.system()} {platform.release()}")
    cpu: Optional[str] = field(default_factory=platform.processor)
    memory: Optional[str] = None
    test_id: Optional[str] = None

    def as_options(self) -> Dict[str, Optional[str]]:
        return {f"meta_{key}": value for key, value in vars(self).items()}


@dataclass
class ServersConfig:
    hosts: List[str] = field(default_factory=list)
    provider: List[Optional[str]] = field(default_factory=list)
    provider_id: List[Optional[str]] = field(default_factory=list)
    service: List[Optional[str]] = field(default_factory=list)
    service_id: List[Optional[str]] = field(default_factory=list)
    region: List[Optional[str]] = field(default_factory=list)
    instance_id: List[Optional[str]] = field(default_factory=list)
    os: List[Optional[str]] = field(default_factory=list)

    def overrides(self) -> Dict[str, List[Optional[str]]]:
        return {key: value for key, value in vars(self).items() if key != "hosts" and value}


@dataclass
class ExportConfig:
    csv_name: Optional[str] = "results.csv"


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class AppConfig:
    root_dir: Path
    paths: PathsConfig
    iperf: IperfConfig
    meta: MetaConfig
    servers: ServersConfig
    export: ExportConfig
    logging: LoggingConfig

    @property
    def parallel(self) -> int:
        return max(1, evaluate_expression(self.iperf.parallel))

    def run_configuration(self) -> RunConfiguration:
        return RunConfiguration(
            udp=self.iperf.udp,
            interval=float(self.iperf.interval),
            warmup=float(self.iperf.warmup or 0),
            drop_final=int(self.iperf.drop_final or 0),
            parallel=self.parallel,
            reverse=self.iperf.reverse,
            tradeoff=self.iperf.tradeoff,
            meta=self.meta.as_options(),
        )

    def options(self) -> Dict[str, object]:
        """Flat run options, as stored alongside results."""
        options: Dict[str, object] = {
            f"iperf_{key}": value for key, value in vars(self.iperf).items() if value is not None
        }
        options["iperf_parallel"] = self.parallel
        options["iperf_len"] = self.iperf.buffer_len
        options.update({key: value for key, value in self.meta.as_options().items() if value is not None})
        return options


def _as_path(base: Path, maybe_path: Optional[str]) -> Path:
    if not maybe_path:
        raise ValueError("Path configuration entries cannot be empty")
    path = (base / maybe_path).resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def _validate(iperf: IperfConfig) -> None:
    if not 1 <= int(iperf.interval) <= 60:
        raise ValueError("iperf.interval must be between 1 and 60 seconds")
    if iperf.warmup and iperf.warmup < 0:
        raise ValueError("iperf.warmup cannot be negative")
    if iperf.drop_final and iperf.drop_final < 0:
        raise ValueError("iperf.drop_final cannot be negative")


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load application configuration from YAML file."""

    root_dir = Path(path).resolve().parent if path else Path.cwd()
    source_path = Path(path) if path else root_dir / "config.yaml"
    if not source_path.exists():
        raise FileNotFoundError(f"Missing configuration file at {source_path}")

    with source_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    paths_data = data.get("paths", {})
    paths = PathsConfig(
        data_dir=_as_path(root_dir, paths_data.get("data_dir", "data")),
        logs_dir=_as_path(root_dir, paths_data.get("logs_dir", "logs")),
    )

    servers_data = data.get("servers", {})
    if isinstance(servers_data, list):
        servers_data = {"hosts": servers_data}

    config = AppConfig(
        root_dir=root_dir,
        paths=paths,
        iperf=IperfConfig(**data.get("iperf", {})),
        meta=MetaConfig(**data.get("meta", {})),
        servers=ServersConfig(**servers_data),
        export=ExportConfig(**data.get("export", {})),
        logging=LoggingConfig(**data.get("logging", {})),
    )
    _validate(config.iperf)

    return config
