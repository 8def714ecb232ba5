"""
Contract deployment services.

This package contains the services that turn a rollup configuration into
deployed contracts and node configuration:
- DeploymentPipeline: checkout, build and deployment script execution
- ConfigRenderer: node configuration and compose manifest generation
- output_parser: extraction of addresses and block numbers from tool output
"""
from raas.services.deployment.config_renderer import ConfigRenderer, NodeCredentials
from raas.services.deployment.pipeline import (
    DeploymentCredentials,
    DeploymentPipeline,
    DeploymentStep,
)

__all__ = [
    "ConfigRenderer",
    "NodeCredentials",
    "DeploymentCredentials",
    "DeploymentPipeline",
    "DeploymentStep",
]
