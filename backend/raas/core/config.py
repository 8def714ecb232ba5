"""
Application configuration using Pydantic Settings.
"""
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

from raas.core.exceptions import MissingConfigurationError


class Settings(BaseSettings):
    """Application settings."""

    # Application
    APP_NAME: str = "Rollup-as-a-Service"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "info"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost"

    # Filesystem root for per-rollup workspaces: <root>/<vm_id>/{workspace,config}
    RAAS_ROOT_DIR: str = "/tmp/espresso"

    # Contracts source
    CONTRACTS_REPO_URL: str = "https://github.com/EspressoSystems/nitro-contracts.git"
    CONTRACTS_BRANCH: str = "develop"
    CONTRACTS_DIR_NAME: str = "nitro-contracts"
    DEPLOYMENTS_DIR_NAME: str = "espresso-deployments"
    TEE_VERIFIER_ADDRESS: str = "0x8354db765810dF8F24f1477B06e91E5b17a408bF"

    # External call timeouts (seconds)
    GIT_TIMEOUT: int = 300
    BUILD_TIMEOUT: int = 3600
    DEPLOY_SCRIPT_TIMEOUT: int = 1800
    DOCKER_API_TIMEOUT: int = 120
    COMPOSE_CLI_TIMEOUT: int = 300

    # Retry policies
    PROCESS_RETRY_ATTEMPTS: int = 1
    PROCESS_RETRY_WAIT: float = 5.0
    CHECKOUT_RETRY_ATTEMPTS: int = 3
    NETWORK_CREATE_ATTEMPTS: int = 3
    NETWORK_CREATE_WAIT: float = 2.0

    # Containers
    COMPOSE_COMMAND: str = "docker compose"
    CONTAINER_STOP_TIMEOUT: int = 10
    PROJECT_PREFIX: str = "espresso"
    PRIMARY_SERVICE: str = "nitro"
    NITRO_IMAGE: str = "ghcr.io/espressosystems/nitro-espresso-integration/nitro-node:v3.5.6-espresso"
    NITRO_HTTP_PORT: int = 8547

    # Fallbacks for addresses the proxy script does not always print
    BRIDGE_ADDRESS: str = ""
    INBOX_ADDRESS: str = ""
    SEQUENCER_INBOX_ADDRESS: str = ""
    VALIDATOR_UTILS_ADDRESS: str = ""
    VALIDATOR_WALLET_CREATOR_ADDRESS: str = ""

    # Secrets. Optional at startup, required where they are used.
    DEPLOYER_PRIVATE_KEY: Optional[str] = None
    ARBISCAN_API_KEY: Optional[str] = None
    VALIDATOR_PRIVATE_KEY: Optional[str] = None
    BATCH_POSTER_PRIVATE_KEY: Optional[str] = None
    ARBITRUM_RPC_URL: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def get_cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    def require(self, name: str) -> str:
        """
        Return a configured value, failing if it is missing or empty.

        Raises:
            MissingConfigurationError: If the setting is unset
        """
        value = getattr(self, name, None)
        if not value:
            raise MissingConfigurationError(name)
        return value


settings = Settings()
