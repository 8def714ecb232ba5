"""
Container orchestration services.

This package contains the services that run a rollup's node stack:
- ComposeManifest: compose file parsing and start ordering
- DockerApiBackend: Docker Engine API control path (primary)
- ComposeCliBackend: compose CLI control path (fallback)
- ContainerOrchestrator: fallback policy and container handle tracking
"""
from raas.services.docker.api_backend import DockerApiBackend
from raas.services.docker.backend_base import ComposeTarget, ContainerBackend
from raas.services.docker.cli_backend import ComposeCliBackend
from raas.services.docker.compose import ComposeManifest, ComposeService
from raas.services.docker.orchestrator import ContainerOrchestrator

__all__ = [
    "ComposeManifest",
    "ComposeService",
    "ComposeTarget",
    "ContainerBackend",
    "DockerApiBackend",
    "ComposeCliBackend",
    "ContainerOrchestrator",
]
