"""
Default configuration values for replica-sync.

Centralized defaults that can be overridden by a JSON config file or
environment variables.
"""

# Global default settings
DEFAULT_SETTINGS = {
    # Source store
    "mongodb": {
        "uri": "mongodb://localhost:27017/sync_db",
        "database": "sync_db",
        "collection": "items",
        "max_pool_size": 10,
        "server_selection_timeout_ms": 5000,
        "socket_timeout_ms": 45000
    },

    # Search index
    "opensearch": {
        "url": "https://localhost:9200",
        "username": "admin",
        "password": "admin",
        "verify_certs": False,
        "timeout": 30.0,
        "max_connections": 10,
        "index": "facebook-ads-hot",
        "retry_on_conflict": 3,
        "routing_fields": ["page_id", "countrySearchedfor"],
        "excluded_fields": [],
        "id_sort_field": "_id",
        "scan_page_size": 1000
    },

    # Batch processor
    "batch": {
        "batch_size": 100,
        "batch_size_bytes": 5 * 1024 * 1024,
        "flush_interval_seconds": 1.0,
        "max_retries": 3,
        "retry_base_delay_seconds": 1.0
    },

    # Change feed consumer
    "feed": {
        "enabled": True,
        "restart_delay_seconds": 5.0,
        "full_document": "updateLookup",
        "full_document_before_change": None
    },

    # Full sync driver
    "full_sync": {
        "batch_size": 100,
        "page_delay_seconds": 0.2,
        "progress_log_every": 10
    },

    # Drift detector
    "count_monitor": {
        "enabled": True,
        "interval_seconds": 5 * 60 * 60.0,
        "startup_delay_seconds": 5 * 60.0,
        "auto_sync_enabled": True,
        "auto_sync_threshold": 100,
        "auto_sync_batch_size": 1000,
        "verification_delay_seconds": 30.0,
        "sample_size": 5
    },

    # Reconciliation engine
    "reconciliation": {
        "enabled": True,
        "interval_seconds": 30 * 60.0,
        "startup_delay_seconds": 2 * 60.0,
        "repair_batch_size": 100,
        "batch_delay_seconds": 0.2
    }
}

# Environment variable mappings
ENV_VAR_MAPPING = {
    'MONGODB_URI': 'mongodb.uri',
    'MONGODB_DATABASE': 'mongodb.database',
    'MONGODB_COLLECTION': 'mongodb.collection',
    'MONGODB_MAX_POOL_SIZE': 'mongodb.max_pool_size',
    'OPENSEARCH_URL': 'opensearch.url',
    'OPENSEARCH_USERNAME': 'opensearch.username',
    'OPENSEARCH_PASSWORD': 'opensearch.password',
    'OPENSEARCH_VERIFY_CERTS': 'opensearch.verify_certs',
    'OPENSEARCH_INDEX': 'opensearch.index',
    'OPENSEARCH_ROUTING_FIELDS': 'opensearch.routing_fields',
    'OPENSEARCH_ID_SORT_FIELD': 'opensearch.id_sort_field',
    'SYNC_BATCH_SIZE': 'batch.batch_size',
    'SYNC_BATCH_SIZE_BYTES': 'batch.batch_size_bytes',
    'SYNC_INTERVAL_SECONDS': 'batch.flush_interval_seconds',
    'SYNC_MAX_RETRIES': 'batch.max_retries',
    'CHANGE_FEED_ENABLED': 'feed.enabled',
    'FULL_SYNC_BATCH_SIZE': 'full_sync.batch_size',
    'COUNT_MONITOR_ENABLED': 'count_monitor.enabled',
    'COUNT_MONITOR_INTERVAL_SECONDS': 'count_monitor.interval_seconds',
    'COUNT_MONITOR_STARTUP_DELAY_SECONDS': 'count_monitor.startup_delay_seconds',
    'COUNT_MONITOR_AUTO_SYNC': 'count_monitor.auto_sync_enabled',
    'COUNT_MONITOR_THRESHOLD': 'count_monitor.auto_sync_threshold',
    'RECONCILIATION_ENABLED': 'reconciliation.enabled',
    'RECONCILIATION_INTERVAL_SECONDS': 'reconciliation.interval_seconds',
    'RECONCILIATION_STARTUP_DELAY_SECONDS': 'reconciliation.startup_delay_seconds'
}
