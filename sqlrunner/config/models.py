"""Pydantic models for SQL Runner settings."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
    AliasChoices,
    ConfigDict,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseType(str, Enum):
    """Supported database types."""
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"


DB_TYPE_ALIASES = {
    "postgres": DatabaseType.POSTGRESQL.value,
    "pg": DatabaseType.POSTGRESQL.value,
    "sqlite3": DatabaseType.SQLITE.value,
}


class AutoCommitMode(str, Enum):
    """When the executor opens an implicit transaction around a statement."""
    AUTO = "auto"
    OFF = "off"
    SMART = "smart"


class ConnectionProfile(BaseModel):
    """A saved connection profile.

    For SQLite, ``database`` is the path of the database file.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Optional[str] = None
    name: str
    db_type: DatabaseType = Field(validation_alias=AliasChoices("db_type", "dbType", "type"))
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = Field(default=None, validation_alias=AliasChoices("user", "username"))
    password: Optional[str] = None
    database: str
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("db_type", mode="before")
    def normalize_db_type(cls, v):
        """Accept common aliases such as "postgres"."""
        if isinstance(v, str):
            lowered = v.strip().lower()
            return DB_TYPE_ALIASES.get(lowered, lowered)
        return v

    @field_validator('port')
    def validate_port(cls, v):
        """Validate port number range."""
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @model_validator(mode='after')
    def validate_profile(self):
        """Validate database-specific required fields and default the id."""
        if not self.database:
            raise ValueError(f"Connection '{self.name}' requires a 'database' field")
        if self.db_type != DatabaseType.SQLITE and not self.host:
            raise ValueError(f"{self.db_type.value} connection '{self.name}' requires a 'host' field")
        if not self.id:
            object.__setattr__(self, "id", self.name)
        return self

    @property
    def label(self) -> str:
        return f"{self.name} ({self.db_type.value})"


class PoolSettings(BaseModel):
    """Connection pool settings applied to pooled backends."""
    max_connections: int = Field(default=10, ge=1, le=1000, description="Maximum pooled connections")
    max_overflow: int = Field(default=0, ge=0, le=100, description="Connections allowed beyond the pool size")
    timeout: int = Field(default=30, ge=1, le=3600, description="Seconds to wait for a pooled connection")
    pool_recycle: int = Field(default=3600, ge=-1, le=86400, description="Connection recycle time in seconds")
    pool_pre_ping: bool = Field(default=True, description="Validate connections before use")
    connect_timeout: int = Field(default=10, ge=1, le=600, description="Driver connect timeout in seconds")


class RunnerConfig(BaseModel):
    """Main settings model for SQL Runner."""
    connections: List[ConnectionProfile] = Field(default_factory=list)
    active_connection: Optional[str] = None
    auto_commit: AutoCommitMode = AutoCommitMode.AUTO
    default_query_limit: int = Field(default=100, ge=0)
    pool: PoolSettings = Field(default_factory=PoolSettings)

    @model_validator(mode='after')
    def validate_connections(self):
        """Ensure profile ids and names are unique and the active id exists."""
        seen_ids = set()
        seen_names = set()
        for profile in self.connections:
            if profile.id in seen_ids:
                raise ValueError(f"Duplicate connection id '{profile.id}'")
            if profile.name in seen_names:
                raise ValueError(f"Duplicate connection name '{profile.name}'")
            seen_ids.add(profile.id)
            seen_names.add(profile.name)

        if self.active_connection and self.active_connection not in seen_ids:
            raise ValueError(f"active_connection '{self.active_connection}' not found in connections")
        return self

    def find_profile(self, ref: Optional[str]) -> Optional[ConnectionProfile]:
        """Resolve a profile by id, falling back to its name."""
        if not ref:
            return None
        for profile in self.connections:
            if profile.id == ref:
                return profile
        for profile in self.connections:
            if profile.name == ref:
                return profile
        return None

    @property
    def active_profile(self) -> Optional[ConnectionProfile]:
        return self.find_profile(self.active_connection)


class EnvironmentSettings(BaseSettings):
    """Environment-specific settings."""

    model_config = SettingsConfigDict(env_prefix="SQLRUNNER_", case_sensitive=False)

    log_level: str = Field(default="WARNING")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)
