from __future__ import annotations

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ownergraph.utils.exceptions import RecoveryStrategy

GITHUB_TOKEN_PREFIXES = ("ghp_", "gho_", "ghu_", "ghs_", "ghr_", "github_pat_")
MIN_TOKEN_LENGTH = 20


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # GitHub
    GITHUB_TOKEN: str = ""
    GITHUB_ORG: str = ""
    GITHUB_MAX_REPOS: int = 0
    GITHUB_MAX_TEAMS: int = 0
    GITHUB_OUTPUT_FILE: str = ""
    GITHUB_GRAPHQL_URL: str = "https://api.github.com/graphql"
    GITHUB_TIMEOUT: float = 30.0
    GITHUB_FETCH_TIMEOUT: float = 600.0  # whole paginated fetch, 0 disables

    # Neo4j
    NEO4J_URI: str = "bolt://localhost:7687"
    NEO4J_USER: str = "neo4j"
    NEO4J_PASSWORD: str = "password"
    NEO4J_DATABASE: str = "neo4j"
    NEO4J_TIMEOUT: float = 30.0
    NEO4J_MAX_POOL_SIZE: int = 50

    # Graph writes
    BATCH_SIZE: int = 100
    MAX_CONCURRENT_BATCHES: int = 4

    # Retry policy applied around the organization fetch
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 30.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = Field(default="json", description="'json' for production, 'console' for dev")

    def recovery_strategy(self) -> RecoveryStrategy:
        return RecoveryStrategy(
            max_attempts=self.RETRY_MAX_ATTEMPTS,
            base_delay=self.RETRY_BASE_DELAY,
            max_delay=self.RETRY_MAX_DELAY,
        )

    def scan_config(self, **overrides: object) -> "ScanConfig":
        values: dict[str, object] = {
            "token": self.GITHUB_TOKEN,
            "organization": self.GITHUB_ORG,
            "max_repos": self.GITHUB_MAX_REPOS,
            "max_teams": self.GITHUB_MAX_TEAMS,
            "output_file": self.GITHUB_OUTPUT_FILE,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ScanConfig(**values)


def get_settings() -> Settings:
    return Settings()


class ScanConfig(BaseModel):
    """Validated inputs for one organization scan."""

    token: str
    organization: str
    max_repos: int = 0
    max_teams: int = 0
    output_file: str = ""

    @field_validator("token")
    @classmethod
    def _check_token(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("GitHub token is required")
        if len(value) < MIN_TOKEN_LENGTH:
            raise ValueError(f"GitHub token must be at least {MIN_TOKEN_LENGTH} characters")
        if not value.startswith(GITHUB_TOKEN_PREFIXES):
            raise ValueError(
                "GitHub token does not have a valid prefix (" + ", ".join(GITHUB_TOKEN_PREFIXES) + ")"
            )
        return value

    @field_validator("organization")
    @classmethod
    def _check_organization(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("organization name is required")
        return value

    @field_validator("max_repos", "max_teams")
    @classmethod
    def _check_limit(cls, value: int) -> int:
        if value < 0:
            raise ValueError("limit cannot be negative")
        return value


def mask_token(token: str) -> str:
    if len(token) <= 8:
        return "****"
    return token[:4] + "****" + token[-4:]
