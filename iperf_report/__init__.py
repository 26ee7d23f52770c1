"""Application bootstrap helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .config import AppConfig, load_config
from .db import StateStore, init_db
from .exporter import CSVExporter
from .logging_setup import configure_logging
from .results import RunAccumulator, process_server
from .results.assembler import resolve_servers
from .runner import IperfRunner

__version__ = "1.0.0"

LOGGER = logging.getLogger(__name__)


class ApplicationContext:
    """Holds shared singletons for a run."""

    def __init__(self, config: AppConfig, verbose: bool = False):
        self.config = config
        configure_logging(config, verbose=verbose)
        self.Session = init_db(config.paths.data_dir)
        self.state = StateStore(self.Session)
        self.exporter = CSVExporter()

    def run(self, hosts: Optional[List[str]] = None) -> int:
        """Test every configured server; returns the number that produced output."""
        hosts = hosts or self.config.servers.hosts
        if not hosts:
            raise ValueError("No iperf servers configured")

        run_config = self.config.run_configuration()
        servers = resolve_servers(hosts, self.config.servers.overrides(), run_config.meta)
        runner = IperfRunner(self.config)
        if runner.version is None:
            raise FileNotFoundError(f"{self.config.iperf.binary} binary is required for testing")

        accumulator = RunAccumulator()
        for server in servers.values():
            capture = runner.run(server)
            process_server(capture, server, run_config, accumulator)

        options = self.config.options()
        options["iperf_version"] = runner.version
        self.state.save_run(options, accumulator)
        if accumulator.failed:
            LOGGER.warning("Testing failed for %d of %d servers", len(accumulator.failed), len(servers))
        return accumulator.success_count

    def export(self, path: Optional[Path] = None) -> Optional[Path]:
        rows = self.state.load_rows()
        if not rows:
            LOGGER.warning("No stored results to export")
            return None
        target = Path(path) if path else self.config.paths.data_dir / (self.config.export.csv_name or "results.csv")
        self.exporter.write(target, rows)
        LOGGER.info("Exported %d result rows to %s", len(rows), target)
        return target


def bootstrap(config_path: Optional[str] = None, verbose: bool = False) -> ApplicationContext:
    """Load configuration and wire dependencies."""

    config_file = Path(config_path).resolve() if config_path else None
    config = load_config(str(config_file)) if config_file else load_config()
    return ApplicationContext(config, verbose=verbose)
