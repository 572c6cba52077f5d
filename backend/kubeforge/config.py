"""Application configuration."""
from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    """Application settings.

    Non-sensitive configuration is defined here with sensible defaults.
    Secrets (database password, encryption key, DNS token) are loaded from
    environment variables.

    Priority: Environment variables > .env file > defaults defined here
    """

    # App Configuration
    APP_NAME: str = "KubeForge"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "info"
    # Public URL of this API, handed to node agents for call-backs
    WEB_ENDPOINT: str = "http://localhost:3000"

    # Database Configuration
    DB_ENGINE: str = "sqlite"  # sqlite or postgresql
    DB_SQLITE_PATH: str = "kubeforge.db"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "kubeforge"
    DB_USER: str = "kubeforge"
    DB_PASSWORD: str = ""  # MUST be set via POSTGRES_PASSWORD env var

    @property
    def DATABASE_URL(self) -> str:
        """Construct database URL from components."""
        if self.DB_ENGINE == "sqlite":
            return f"sqlite+aiosqlite:///{self.DB_SQLITE_PATH}"
        password = os.getenv("POSTGRES_PASSWORD", self.DB_PASSWORD)
        return f"postgresql+asyncpg://{self.DB_USER}:{password}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # OpenStack API endpoints
    IDENTITY_ENDPOINT: str = "http://localhost:5000"
    COMPUTE_ENDPOINT: str = "http://localhost:8774"
    NETWORK_ENDPOINT: str = "http://localhost:9696"
    LOADBALANCER_ENDPOINT: str = "http://localhost:9876"
    NOVA_MICROVERSION: str = "2.64"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Cloud resources shared by every cluster
    PUBLIC_NETWORK_ID: str = ""
    IMAGE_REF: str = ""
    AVAILABILITY_ZONE: str = "nova"
    MASTER_DISK_SIZE_GB: int = 80
    APPLICATION_CREDENTIAL_ROLES: List[str] = ["load-balancer_member", "member"]

    # Cloudflare DNS
    CLOUDFLARE_API_URL: str = "https://api.cloudflare.com/client/v4"
    CLOUDFLARE_API_TOKEN: str = ""  # MUST be set via env var
    CLOUDFLARE_ZONE_ID: str = ""
    CLOUDFLARE_DOMAIN: str = "k8s.example.com"
    DNS_RECORD_TTL: int = 3600

    # Node agent versions rendered into the bootstrap payload
    NODE_AGENT_VERSION: str = "v1.0.0"
    CLUSTER_AGENT_VERSION: str = "v1.0.0"
    CLUSTER_AUTOSCALER_VERSION: str = "v1.30.0"
    CLOUD_PROVIDER_VERSION: str = "v1.30.0"

    # Wait-until-ready budgets (attempts, first sleep, sleep increment)
    LB_ACTIVE_ATTEMPTS: int = 8
    LB_ACTIVE_START_SECONDS: float = 10
    LB_ACTIVE_INCREMENT_SECONDS: float = 5
    LB_ONLINE_ATTEMPTS: int = 8
    LB_ONLINE_START_SECONDS: float = 35
    LB_ONLINE_INCREMENT_SECONDS: float = 5
    LB_DELETE_ATTEMPTS: int = 8
    LB_DELETE_START_SECONDS: float = 10
    LB_DELETE_INCREMENT_SECONDS: float = 5
    KUBECONFIG_WAIT_ATTEMPTS: int = 20
    KUBECONFIG_WAIT_START_SECONDS: float = 15
    KUBECONFIG_WAIT_INCREMENT_SECONDS: float = 0

    # Seconds running jobs get to finish on shutdown before cancellation
    SHUTDOWN_GRACE_SECONDS: float = 10

    # CORS Configuration
    CORS_ORIGINS: List[str] = [
        "http://localhost:3001",
        "http://localhost:3000",
    ]

    # Encryption (Secret - MUST be set via env var)
    ENCRYPTION_KEY: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
