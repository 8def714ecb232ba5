"""
Compose manifest parsing.

Reads the subset of the compose file format the node manifests use
(image, ports, environment, volumes, depends_on, healthcheck, restart,
command, entrypoint, user) and converts each service into keyword
arguments for docker-py's ``containers.create``.
"""
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from raas.core.exceptions import ManifestError

logger = logging.getLogger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|ms|s|m|h)")
_DURATION_NANOS = {
    "ns": 1,
    "us": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

PortBinding = Union[None, int, Tuple[str, int]]


def parse_duration(value: Union[str, int, float]) -> int:
    """
    Convert a compose duration ("30s", "1m30s", "500ms") to nanoseconds.

    Bare numbers are seconds.
    """
    if isinstance(value, (int, float)):
        return int(value * 1_000_000_000)
    text = str(value).strip()
    parts = _DURATION_PART.findall(text)
    if not parts or "".join(n + u for n, u in parts) != text:
        raise ValueError(f"Invalid duration: {value}")
    return int(sum(float(number) * _DURATION_NANOS[unit] for number, unit in parts))


def parse_port(mapping: Union[str, int]) -> Tuple[str, PortBinding]:
    """
    Convert a compose short-form port to a docker-py ports entry.

    "8547"                -> ("8547/tcp", None)    ephemeral host port
    "8547:8547"           -> ("8547/tcp", 8547)
    "127.0.0.1:80:8547"   -> ("8547/tcp", ("127.0.0.1", 80))
    "53:53/udp"           -> ("53/udp", 53)
    """
    text = str(mapping)
    protocol = "tcp"
    if "/" in text:
        text, protocol = text.rsplit("/", 1)
    parts = text.split(":")
    try:
        if len(parts) == 1:
            return f"{int(parts[0])}/{protocol}", None
        if len(parts) == 2:
            return f"{int(parts[1])}/{protocol}", int(parts[0])
        if len(parts) == 3:
            return f"{int(parts[2])}/{protocol}", (parts[0], int(parts[1]))
    except ValueError:
        pass
    raise ValueError(f"Invalid port mapping: {mapping}")


@dataclass
class ComposeService:
    """One service entry of a compose manifest."""
    name: str
    image: str
    ports: List[str] = field(default_factory=list)
    environment: Dict[str, str] = field(default_factory=dict)
    volumes: List[str] = field(default_factory=list)
    depends_on: List[str] = field(default_factory=list)
    healthcheck: Optional[Dict[str, Any]] = None
    restart: Optional[str] = None
    command: Optional[Union[str, List[str]]] = None
    entrypoint: Optional[Union[str, List[str]]] = None
    user: Optional[str] = None

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ComposeService":
        if not isinstance(data, dict):
            raise ValueError(f"service {name} must be a mapping")
        image = data.get("image")
        if not image:
            raise ValueError(f"service {name} has no image")

        environment = data.get("environment") or {}
        if isinstance(environment, list):
            environment = dict(
                item.split("=", 1) if "=" in item else (item, "") for item in environment
            )

        depends_on = data.get("depends_on") or []
        if isinstance(depends_on, dict):
            depends_on = list(depends_on)

        restart = data.get("restart")
        if restart is False:
            # YAML reads an unquoted `no` as a boolean
            restart = "no"
        return cls(
            name=name,
            image=str(image),
            ports=[str(p) for p in data.get("ports") or []],
            environment={str(k): "" if v is None else str(v) for k, v in environment.items()},
            volumes=[str(v) for v in data.get("volumes") or []],
            depends_on=[str(d) for d in depends_on],
            healthcheck=data.get("healthcheck"),
            restart=str(restart) if restart is not None else None,
            command=data.get("command"),
            entrypoint=data.get("entrypoint"),
            user=str(data["user"]) if data.get("user") is not None else None,
        )

    def port_bindings(self) -> Dict[str, PortBinding]:
        return dict(parse_port(p) for p in self.ports)

    def volume_bindings(self, base_dir: Path, namespace: str) -> Dict[str, Dict[str, str]]:
        """
        Convert "source:target[:mode]" entries to docker-py volume bindings.

        Relative host paths resolve against the manifest directory; named
        volumes are prefixed with the namespace.
        """
        bindings = {}
        for entry in self.volumes:
            parts = entry.split(":")
            if len(parts) < 2:
                raise ValueError(f"Anonymous volumes are not supported: {entry}")
            source, target = parts[0], parts[1]
            mode = parts[2] if len(parts) > 2 else "rw"
            if source.startswith((".", "/", "~")):
                source = str((base_dir / Path(source).expanduser()).resolve())
            else:
                source = f"{namespace}_{source}"
            bindings[source] = {"bind": target, "mode": mode}
        return bindings

    def restart_policy(self) -> Optional[Dict[str, Any]]:
        if not self.restart or self.restart == "no":
            return None
        name, _, retries = self.restart.partition(":")
        policy: Dict[str, Any] = {"Name": name}
        if retries:
            policy["MaximumRetryCount"] = int(retries)
        return policy

    def healthcheck_config(self) -> Optional[Dict[str, Any]]:
        if not self.healthcheck:
            return None
        if self.healthcheck.get("disable"):
            return {"test": ["NONE"]}
        config: Dict[str, Any] = {"test": self.healthcheck.get("test")}
        for key in ("interval", "timeout", "start_period"):
            if key in self.healthcheck:
                config[key] = parse_duration(self.healthcheck[key])
        if "retries" in self.healthcheck:
            config["retries"] = int(self.healthcheck["retries"])
        return config

    def create_kwargs(
        self,
        container_name: str,
        base_dir: Path,
        namespace: str,
        labels: Dict[str, str],
    ) -> Dict[str, Any]:
        """Keyword arguments for ``client.containers.create``."""
        kwargs: Dict[str, Any] = {
            "image": self.image,
            "name": container_name,
            "detach": True,
            "labels": labels,
            "environment": self.environment,
        }
        if self.ports:
            kwargs["ports"] = self.port_bindings()
        if self.volumes:
            kwargs["volumes"] = self.volume_bindings(base_dir, namespace)
        if self.command is not None:
            kwargs["command"] = self.command
        if self.entrypoint is not None:
            kwargs["entrypoint"] = self.entrypoint
        if self.user:
            kwargs["user"] = self.user
        restart_policy = self.restart_policy()
        if restart_policy:
            kwargs["restart_policy"] = restart_policy
        healthcheck = self.healthcheck_config()
        if healthcheck:
            kwargs["healthcheck"] = healthcheck
        return kwargs


@dataclass
class ComposeManifest:
    """Parsed compose file."""
    path: Path
    services: Dict[str, ComposeService]

    @property
    def base_dir(self) -> Path:
        return self.path.parent

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ComposeManifest":
        """
        Parse a compose file.

        Raises:
            ManifestError: If the file is missing, not YAML, or has invalid services
        """
        path = Path(path)
        if not path.exists():
            raise ManifestError(str(path), "file not found")
        try:
            data = yaml.safe_load(path.read_text())
        except (OSError, yaml.YAMLError) as e:
            raise ManifestError(str(path), f"unreadable: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("services"), dict) or not data["services"]:
            raise ManifestError(str(path), "no services defined")

        try:
            services = {
                name: ComposeService.from_dict(name, entry) for name, entry in data["services"].items()
            }
            for service in services.values():
                service.port_bindings()
                service.volume_bindings(path.parent, "")
                service.restart_policy()
                service.healthcheck_config()
        except ValueError as e:
            raise ManifestError(str(path), str(e)) from e

        manifest = cls(path=path, services=services)
        manifest.start_order()
        return manifest

    def start_order(self) -> List[str]:
        """
        Service names ordered so dependencies start first.

        Raises:
            ManifestError: On unknown dependencies or a dependency cycle
        """
        in_degree = {name: 0 for name in self.services}
        dependents: Dict[str, List[str]] = {name: [] for name in self.services}
        for name, service in self.services.items():
            for dependency in service.depends_on:
                if dependency not in self.services:
                    raise ManifestError(str(self.path), f"{name} depends on unknown service {dependency}")
                dependents[dependency].append(name)
                in_degree[name] += 1

        queue = deque(sorted(name for name, degree in in_degree.items() if degree == 0))
        order = []
        while queue:
            name = queue.popleft()
            order.append(name)
            for dependent in sorted(dependents[name]):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(order) != len(self.services):
            cyclic = sorted(set(self.services) - set(order))
            raise ManifestError(str(self.path), f"dependency cycle between {', '.join(cyclic)}")
        return order
