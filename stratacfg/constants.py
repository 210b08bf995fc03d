"""
Configuration-related constants and resource limits.
"""

# Maximum config file size (10MB) to prevent DoS attacks
MAX_CONFIG_SIZE_BYTES = 10 * 1024 * 1024

# Maximum size of a document fetched by a ref: resolver (16MB)
MAX_REF_SIZE_BYTES = 16 * 1024 * 1024

# Watcher timing defaults, in seconds
DEFAULT_DEBOUNCE_SECS = 0.1
DEFAULT_POLL_INTERVAL_SECS = 30.0

# Snapshot stream capacity before the oldest pending item is dropped
DEFAULT_STREAM_SIZE = 16

# Metadata key under which setting() stores its declaration
SETTING_METADATA_KEY = "stratacfg"
