# Models package
from raas.models.rollup import (
    DeploymentResult,
    NetworkType,
    RollupConfig,
    RollupRecord,
    RollupStatus,
)
