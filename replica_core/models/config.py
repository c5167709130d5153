"""
Configuration models for replica-sync.

Handles source store, search index, batching, and timer settings for
every subsystem of the replication engine.
"""

from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MongoConfig(BaseModel):
    """Source store (MongoDB) configuration"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    # Connection settings
    uri: str = "mongodb://localhost:27017/sync_db"
    database: str = "sync_db"
    collection: str = "items"

    # Pool settings
    max_pool_size: int = Field(default=10, ge=1, le=200)
    server_selection_timeout_ms: int = Field(default=5000, ge=100)
    socket_timeout_ms: int = Field(default=45000, ge=100)

    @field_validator('uri')
    @classmethod
    def validate_uri(cls, v: str) -> str:
        """Validate MongoDB connection string scheme"""
        if not v.startswith(('mongodb://', 'mongodb+srv://')):
            raise ValueError('MongoDB URI must start with mongodb:// or mongodb+srv://')
        return v

    @field_validator('database', 'collection')
    @classmethod
    def validate_names(cls, v: str) -> str:
        if not v:
            raise ValueError('Database and collection names cannot be empty')
        return v


class OpenSearchConfig(BaseModel):
    """Search index (OpenSearch) configuration"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    # Connection settings
    url: str = "https://localhost:9200"
    username: Optional[str] = "admin"
    password: Optional[str] = "admin"
    verify_certs: bool = False
    timeout: float = Field(default=30.0, gt=0)
    max_connections: int = Field(default=10, ge=1, le=100)

    # Index settings
    index: str = "facebook-ads-hot"

    # Write behaviour
    retry_on_conflict: int = Field(default=3, ge=0, le=10)
    routing_fields: List[str] = Field(
        default_factory=lambda: ["page_id", "countrySearchedfor"]
    )
    excluded_fields: List[str] = Field(default_factory=list)

    # Identifier scan
    id_sort_field: str = "_id"
    scan_page_size: int = Field(default=1000, ge=1, le=10000)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate OpenSearch URL format"""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('OpenSearch URL must start with http:// or https://')
        return v.rstrip('/')

    @field_validator('index')
    @classmethod
    def validate_index(cls, v: str) -> str:
        """Index names are lowercase in OpenSearch"""
        if not v or v != v.lower():
            raise ValueError('Index name must be a non-empty lowercase string')
        return v

    @property
    def use_ssl(self) -> bool:
        return self.url.startswith('https://')


class BatchConfig(BaseModel):
    """Batch processor configuration"""
    model_config = ConfigDict(validate_assignment=True)

    batch_size: int = Field(default=100, ge=1, le=10000)
    batch_size_bytes: int = Field(default=5 * 1024 * 1024, ge=1024)
    flush_interval_seconds: float = Field(default=1.0, gt=0)
    max_retries: int = Field(default=3, ge=1, le=10)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)


class FeedConfig(BaseModel):
    """Change feed consumer configuration"""
    model_config = ConfigDict(validate_assignment=True)

    enabled: bool = True
    restart_delay_seconds: float = Field(default=5.0, ge=0)
    full_document: str = "updateLookup"
    # Pre-images need MongoDB 6.0+ and changeStreamPreAndPostImages enabled on the collection
    full_document_before_change: Optional[str] = None

    @field_validator('full_document')
    @classmethod
    def validate_full_document(cls, v: str) -> str:
        valid_modes = {'default', 'updateLookup', 'whenAvailable', 'required'}
        if v not in valid_modes:
            raise ValueError(f'full_document must be one of: {valid_modes}')
        return v

    @field_validator('full_document_before_change')
    @classmethod
    def validate_before_change(cls, v: Optional[str]) -> Optional[str]:
        valid_modes = {'off', 'whenAvailable', 'required'}
        if v is not None and v not in valid_modes:
            raise ValueError(f'full_document_before_change must be one of: {valid_modes}')
        return v


class FullSyncConfig(BaseModel):
    """Full sync driver configuration"""
    model_config = ConfigDict(validate_assignment=True)

    batch_size: int = Field(default=100, ge=1, le=10000)
    page_delay_seconds: float = Field(default=0.2, ge=0)
    progress_log_every: int = Field(default=10, ge=1)


class CountMonitorConfig(BaseModel):
    """Drift detector configuration"""
    model_config = ConfigDict(validate_assignment=True)

    enabled: bool = True
    interval_seconds: float = Field(default=5 * 60 * 60, gt=0)
    startup_delay_seconds: float = Field(default=5 * 60, ge=0)
    auto_sync_enabled: bool = True
    auto_sync_threshold: int = Field(default=100, ge=0)
    auto_sync_batch_size: int = Field(default=1000, ge=1, le=10000)
    verification_delay_seconds: float = Field(default=30.0, ge=0)
    sample_size: int = Field(default=5, ge=0, le=100)


class ReconciliationConfig(BaseModel):
    """Reconciliation engine configuration"""
    model_config = ConfigDict(validate_assignment=True)

    enabled: bool = True
    interval_seconds: float = Field(default=30 * 60, gt=0)
    startup_delay_seconds: float = Field(default=2 * 60, ge=0)
    repair_batch_size: int = Field(default=100, ge=1, le=10000)
    batch_delay_seconds: float = Field(default=0.2, ge=0)


class ServiceConfig(BaseModel):
    """Complete configuration for one replication process"""
    model_config = ConfigDict(
        validate_assignment=True,
        use_enum_values=False
    )

    mongodb: MongoConfig = Field(default_factory=MongoConfig)
    opensearch: OpenSearchConfig = Field(default_factory=OpenSearchConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    full_sync: FullSyncConfig = Field(default_factory=FullSyncConfig)
    count_monitor: CountMonitorConfig = Field(default_factory=CountMonitorConfig)
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)

    def to_dict(self, redact_secrets: bool = False) -> dict:
        """Convert to dictionary for JSON serialization"""
        data = self.model_dump()
        if redact_secrets and data['opensearch'].get('password'):
            data['opensearch']['password'] = '***'
        return data


class ProcessSettings(BaseSettings):
    """Process-wide settings read from REPLICA_SYNC_* environment variables"""
    model_config = SettingsConfigDict(
        env_prefix="REPLICA_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Optional JSON config file layered over the defaults
    config_file: Optional[Path] = None

    # Logging
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_to_file: bool = False
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".replica-sync" / "logs")

    def get_log_file(self) -> Optional[Path]:
        """Get log file path if logging to file is enabled"""
        if not self.log_to_file:
            return None
        self.log_dir.mkdir(parents=True, exist_ok=True)
        return self.log_dir / "replica-sync.log"
