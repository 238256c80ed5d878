"""Container Inspector — runtime metadata, resource metrics, process table and log tail.

All Docker SDK calls are blocking and are pushed to the default executor so a
slow runtime API never stalls other scans sharing the event loop.
"""

import asyncio
import os
from dataclasses import dataclass
from typing import Any

from ..errors import MissingVolumeError
from ..models.detection import Detection, Metrics
from ..utils.logging import get_logger
from . import signatures

logger = get_logger("scanner.container_inspector")

_MB = 1024 * 1024


@dataclass
class ContainerContext:
    """A resolved container: SDK handle plus the facts needed to scan it."""

    container: Any
    container_id: str  # truncated to 12 chars
    volume_path: str
    volume_id: str
    attrs: dict


class ContainerInspector:
    """Reads a single container's runtime state and classifies it."""

    def __init__(self, docker_client, config: dict | None = None):
        cfg = config or {}
        self._docker = docker_client
        self._high_cpu_threshold: float = cfg.get("high_cpu_threshold", 0.96)
        self._small_volume_size: float = cfg.get("small_volume_size", 3.5)
        self._high_network_usage: int = cfg.get("high_network_usage", 4096 * _MB)
        self._log_tail_lines: int = cfg.get("log_tail_lines", 1000)
        self._volumes_dir: str = cfg.get("volumes_dir", "")

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: fn(*args, **kwargs))

    async def list_running(self) -> list[str]:
        """Ids of all running containers."""
        containers = await self._run(self._docker.containers.list)
        return [c.id for c in containers]

    async def resolve(self, container_id: str) -> ContainerContext:
        """Inspect a container and locate its bind-mounted persistent storage.

        A bind mount under ``volumes_dir`` wins; otherwise the first bind mount
        is used.
        """
        container = await self._run(self._docker.containers.get, container_id)
        attrs = container.attrs or {}
        binds = [
            m.get("Source") for m in attrs.get("Mounts") or []
            if m.get("Type") == "bind" and m.get("Source")
        ]
        preferred = [
            s for s in binds if self._volumes_dir and s.startswith(self._volumes_dir.rstrip("/") + "/")
        ]
        volume_path = (preferred or binds or [None])[0]
        if not volume_path:
            raise MissingVolumeError(container_id)

        return ContainerContext(
            container=container,
            container_id=(attrs.get("Id") or container.id)[:12],
            volume_path=volume_path,
            volume_id=os.path.basename(volume_path.rstrip("/")),
            attrs=attrs,
        )

    async def inspect(self, ctx: ContainerContext, detection: Detection) -> None:
        """Sample metrics, processes, ports and logs into ``detection``.

        ``detection.volume_size`` must already be set; the small-volume rule
        depends on it.
        """
        stats = await self._run(ctx.container.stats, stream=False)
        detection.metrics, network_bytes = self.parse_stats(stats)
        self.apply_resource_rules(detection, network_bytes)

        top = await self._run(ctx.container.top)
        detection.processes = self.match_processes(top)
        if detection.processes:
            detection.add_type("Suspicious Process")

        detection.network.extend(self.match_ports(ctx.attrs))

        raw_logs = await self._run(
            ctx.container.logs, stdout=True, stderr=True, tail=self._log_tail_lines
        )
        detection.logs = raw_logs.decode("utf-8", errors="replace") if isinstance(raw_logs, bytes) else str(raw_logs)
        for detection_type in self.classify_logs(detection.logs):
            detection.add_type(detection_type)

        logger.debug(
            "container_inspected",
            container_id=ctx.container_id,
            cpu=detection.metrics.cpu,
            processes=len(detection.processes),
        )

    @staticmethod
    def parse_stats(stats: dict) -> tuple[Metrics, int]:
        """Turn a one-shot stats snapshot into metrics plus raw network bytes."""
        cpu_stats = stats.get("cpu_stats") or {}
        total_usage = (cpu_stats.get("cpu_usage") or {}).get("total_usage", 0)
        system_usage = cpu_stats.get("system_cpu_usage") or 0
        cpu = (total_usage / system_usage) * 100 if system_usage else 0.0

        memory = (stats.get("memory_stats") or {}).get("usage", 0) / _MB

        network_bytes = sum(
            iface.get("rx_bytes", 0) + iface.get("tx_bytes", 0)
            for iface in (stats.get("networks") or {}).values()
        )
        metrics = Metrics(
            cpu=round(cpu, 2),
            memory=round(memory, 2),
            network=round(network_bytes / _MB, 2),
        )
        return metrics, network_bytes

    def apply_resource_rules(self, detection: Detection, network_bytes: int) -> None:
        if (
            detection.volume_size < self._small_volume_size
            and detection.metrics.cpu > self._high_cpu_threshold
        ):
            detection.add_type("High CPU with Small Volume")
        if network_bytes > self._high_network_usage:
            detection.add_type("High Network Usage")

    @staticmethod
    def match_processes(top: dict) -> list[str]:
        """Command lines from ``docker top`` output that hit the process denylist."""
        titles = [t.upper() for t in (top or {}).get("Titles") or []]
        cmd_index = -1
        for name in ("CMD", "COMMAND"):
            if name in titles:
                cmd_index = titles.index(name)
                break

        matched = []
        for row in (top or {}).get("Processes") or []:
            if not row:
                continue
            cmd = row[cmd_index]
            if signatures.matches_any(cmd, signatures.SUSPICIOUS_PROCESSES):
                matched.append(cmd)
        return matched

    @staticmethod
    def match_ports(attrs: dict) -> list[str]:
        """Published or exposed ports that belong to the proxy/relay port list."""
        ports = (attrs.get("NetworkSettings") or {}).get("Ports") or {}
        found = []
        for port_key, bindings in ports.items():
            port, _, proto = port_key.partition("/")
            if port.isdigit() and int(port) in signatures.PROXY_PORTS:
                found.append(f"Proxy port exposed: {port}/{proto or 'tcp'}")
            for binding in bindings or []:
                host_port = str(binding.get("HostPort") or "")
                if host_port.isdigit() and int(host_port) in signatures.PROXY_PORTS and host_port != port:
                    found.append(f"Proxy port published on host: {host_port}")
        return found

    @staticmethod
    def classify_logs(logs: str) -> list[str]:
        """Detection types contributed by the log tail, in signature order."""
        types = [
            category
            for category, indicators in signatures.LOG_INDICATORS.items()
            if signatures.matches_any(logs, indicators)
        ]
        if signatures.matches_any(logs, signatures.SUSPICIOUS_LOG_WORDS):
            types.append("Suspicious Log Content")
        return types
