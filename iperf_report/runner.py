"""Invocation of the iperf binary and capture of its raw output."""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .config import AppConfig
from .results.models import ServerCapture, ServerIdentity

LOGGER = logging.getLogger(__name__)

DEFAULT_IPERF3_PORT = 5201
VERSION_PATTERN = re.compile(r"\s([0-9][0-9.]*)\s")


def detect_version(binary: str) -> Optional[str]:
    """Version string reported by ``<binary> --version``, if any."""
    if not shutil.which(binary):
        return None
    completed = subprocess.run(
        [binary, "--version"], capture_output=True, text=True, check=False, timeout=10
    )
    match = VERSION_PATTERN.search(f" {completed.stdout} {completed.stderr} ")
    return match.group(1) if match else None


class IperfRunner:
    def __init__(self, config: AppConfig, work_dir: Optional[Path] = None):
        self.config = config
        self.work_dir = Path(work_dir or config.paths.data_dir)
        self.version = detect_version(config.iperf.binary)

    @property
    def structured(self) -> bool:
        return bool(self.version and self.version.startswith("3"))

    def legacy_command(self, server: ServerIdentity, output_file: Path) -> List[str]:
        iperf = self.config.iperf
        cmd = [iperf.binary, "-y", "C", "-o", str(output_file), "-c", server.hostname, "-i", str(iperf.interval)]
        if iperf.bandwidth:
            cmd += ["-b", str(iperf.bandwidth)]
        cmd += ["-l", iperf.buffer_len]
        if iperf.mss:
            cmd += ["-M", str(iperf.mss)]
        if iperf.nodelay:
            cmd.append("-N")
        if iperf.num:
            cmd += ["-n", str(iperf.num)]
        if server.port:
            cmd += ["-p", str(server.port)]
        cmd += ["-P", str(self.config.parallel)]
        if not iperf.num:
            cmd += ["-t", str(iperf.time)]
        if iperf.tos:
            cmd += ["-S", str(iperf.tos)]
        if iperf.tradeoff:
            cmd.append("-r")
        if iperf.ttl:
            cmd += ["-T", str(iperf.ttl)]
        if iperf.udp:
            cmd.append("-u")
        if iperf.window:
            cmd += ["-w", str(iperf.window)]
        return cmd

    def structured_command(self, server: ServerIdentity, port: int, output_file: Path) -> List[str]:
        iperf = self.config.iperf
        cmd = [
            iperf.binary,
            "--json",
            "--logfile",
            str(output_file),
            "-c",
            server.hostname,
            "-p",
            str(port),
            "-i",
            str(iperf.interval),
        ]
        cmd += ["-n", str(iperf.num)] if iperf.num else ["-t", str(iperf.time)]
        if iperf.udp:
            cmd.append("-u")
            if iperf.bandwidth:
                cmd += ["-b", str(iperf.bandwidth)]
        if iperf.len:
            cmd += ["-l", str(iperf.len)]
        if iperf.mss:
            cmd += ["-M", str(iperf.mss)]
        if iperf.nodelay:
            cmd.append("-N")
        if iperf.tos:
            cmd += ["-S", str(iperf.tos)]
        if iperf.window:
            cmd += ["-w", str(iperf.window)]
        if iperf.zerocopy:
            cmd.append("-Z")
        if iperf.reverse:
            cmd.append("-R")
        return cmd

    def _timeout(self) -> float:
        iperf = self.config.iperf
        if iperf.timeout:
            return float(iperf.timeout)
        return float(iperf.time * (2 if iperf.tradeoff else 1) + 30)

    def run(self, server: ServerIdentity) -> ServerCapture:
        """Run iperf against ``server``; outputs are empty strings when the test failed."""
        with tempfile.TemporaryDirectory(dir=self.work_dir) as tmp:
            tmp_dir = Path(tmp)
            if self.structured:
                base_port = server.port or DEFAULT_IPERF3_PORT
                jobs = {
                    str(base_port + offset): (
                        self.structured_command(server, base_port + offset, tmp_dir / f"{offset}.json"),
                        tmp_dir / f"{offset}.json",
                    )
                    for offset in range(self.config.parallel)
                }
            else:
                output_file = tmp_dir / "iperf.csv"
                jobs = {"0": (self.legacy_command(server, output_file), output_file)}

            command = " && ".join(" ".join(cmd) for cmd, _ in jobs.values())
            LOGGER.info("Testing server %s using %s", server.hostname, command)
            started = datetime.utcnow()
            self._execute({port: cmd for port, (cmd, _) in jobs.items()})
            stopped = datetime.utcnow()

            outputs: Dict[str, str] = {}
            for port, (_, output_file) in jobs.items():
                outputs[port] = output_file.read_text(encoding="utf-8") if output_file.exists() else ""

        return ServerCapture(
            hostname=server.hostname,
            outputs=outputs,
            started=started,
            stopped=stopped,
            command=command,
            version=self.version,
        )

    def _execute(self, commands: Dict[str, List[str]]) -> None:
        processes = {
            port: subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
            for port, cmd in commands.items()
        }
        # all connections run concurrently and share one deadline
        deadline = time.monotonic() + self._timeout()
        for port, process in processes.items():
            try:
                _, stderr = process.communicate(timeout=max(0.0, deadline - time.monotonic()))
            except subprocess.TimeoutExpired:
                process.kill()
                process.communicate()
                LOGGER.warning("iperf connection %s timed out and was terminated", port)
                continue
            if process.returncode != 0:
                LOGGER.warning("iperf connection %s exited with code %d: %s", port, process.returncode, stderr.strip())
