"""
Abstract base class for container control backends.

The orchestrator talks to containers through two interchangeable paths:
the Docker Engine API (primary) and the compose CLI (fallback). Both
implement this interface for the operations they share.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional


@dataclass
class ComposeTarget:
    """One namespace's containers as known to the orchestrator."""
    namespace: str
    manifest_path: Optional[Path] = None
    handles: Dict[str, str] = field(default_factory=dict)  # service name: container id

    @property
    def network_name(self) -> str:
        return f"network-{self.namespace}"


class ContainerBackend(ABC):
    """
    Interface shared by the API and CLI control paths.

    Implementations must provide methods for:
    - Tearing down every container of a namespace
    - Retrieving a service's logs
    """

    name: str = "backend"

    @abstractmethod
    async def down(self, target: ComposeTarget) -> None:
        """
        Stop and remove all containers and the network of a namespace.

        Args:
            target: Namespace, manifest and tracked container handles

        Raises:
            ContainerApiError or ContainerCliError on failure
        """
        pass

    @abstractmethod
    async def logs(self, target: ComposeTarget, service_name: str, tail: int = 100) -> str:
        """
        Get logs for one service.

        Args:
            target: Namespace, manifest and tracked container handles
            service_name: Service from the manifest
            tail: Number of lines to retrieve

        Returns:
            Log content as string
        """
        pass
