"""
Unit tests for configuration models.

Tests defaults, validation, and secret redaction.
"""

import pytest
from pydantic import ValidationError

from replica_core.models.config import (
    BatchConfig, CountMonitorConfig, FeedConfig, MongoConfig, OpenSearchConfig,
    ProcessSettings, ReconciliationConfig, ServiceConfig
)


class TestMongoConfig:
    """Test MongoConfig model"""

    def test_defaults(self):
        config = MongoConfig()

        assert config.uri.startswith("mongodb://")
        assert config.max_pool_size == 10

    def test_uri_validation(self):
        """Test that non-MongoDB URIs are rejected"""
        MongoConfig(uri="mongodb+srv://cluster.example.net/db")

        with pytest.raises(ValidationError):
            MongoConfig(uri="http://localhost:27017")


class TestOpenSearchConfig:
    """Test OpenSearchConfig model"""

    def test_default_opensearch_config(self):
        config = OpenSearchConfig()

        assert config.index == "facebook-ads-hot"
        assert config.routing_fields == ["page_id", "countrySearchedfor"]
        assert config.retry_on_conflict == 3
        assert config.id_sort_field == "_id"
        assert config.use_ssl is True

    def test_url_validation(self):
        """Test URL validation and trailing slash removal"""
        config = OpenSearchConfig(url="http://search.internal:9200/")

        assert config.url == "http://search.internal:9200"
        assert config.use_ssl is False

        with pytest.raises(ValidationError):
            OpenSearchConfig(url="search.internal:9200")

    def test_index_must_be_lowercase(self):
        with pytest.raises(ValidationError):
            OpenSearchConfig(index="Ads")


class TestSubsystemConfigs:
    """Test subsystem bounds"""

    def test_batch_defaults(self):
        config = BatchConfig()

        assert config.batch_size == 100
        assert config.flush_interval_seconds == 1.0
        assert config.max_retries == 3

    def test_batch_size_bounds(self):
        with pytest.raises(ValidationError):
            BatchConfig(batch_size=0)

    def test_flush_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            BatchConfig(flush_interval_seconds=0)

    def test_full_document_mode_validation(self):
        assert FeedConfig(full_document="required").full_document == "required"

        with pytest.raises(ValidationError):
            FeedConfig(full_document="sometimes")

    def test_pre_images_off_by_default(self):
        assert FeedConfig().full_document_before_change is None
        assert FeedConfig(full_document_before_change="required").full_document_before_change == "required"

        with pytest.raises(ValidationError):
            FeedConfig(full_document_before_change="updateLookup")

    def test_monitor_schedule_defaults(self):
        monitor = CountMonitorConfig()
        reconciliation = ReconciliationConfig()

        assert monitor.interval_seconds == 5 * 60 * 60
        assert monitor.auto_sync_threshold == 100
        assert reconciliation.interval_seconds == 30 * 60
        assert reconciliation.startup_delay_seconds == 2 * 60

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValidationError):
            CountMonitorConfig(auto_sync_threshold=-5)


class TestServiceConfig:
    """Test the aggregate configuration"""

    def test_to_dict_redacts_password(self):
        config = ServiceConfig(opensearch=OpenSearchConfig(password="hunter2"))

        assert config.to_dict()["opensearch"]["password"] == "hunter2"
        assert config.to_dict(redact_secrets=True)["opensearch"]["password"] == "***"

    def test_redaction_skips_missing_password(self):
        config = ServiceConfig(opensearch=OpenSearchConfig(password=None))

        assert config.to_dict(redact_secrets=True)["opensearch"]["password"] is None


class TestProcessSettings:
    """Test environment-driven process settings"""

    def test_reads_prefixed_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("REPLICA_SYNC_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("REPLICA_SYNC_LOG_TO_FILE", "true")
        monkeypatch.setenv("REPLICA_SYNC_LOG_DIR", str(tmp_path / "logs"))

        settings = ProcessSettings()

        assert settings.log_level == "DEBUG"
        assert settings.get_log_file() == tmp_path / "logs" / "replica-sync.log"
        assert (tmp_path / "logs").is_dir()

    def test_no_log_file_by_default(self, monkeypatch):
        monkeypatch.delenv("REPLICA_SYNC_LOG_TO_FILE", raising=False)

        assert ProcessSettings(log_to_file=False).get_log_file() is None

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            ProcessSettings(log_level="LOUD")
