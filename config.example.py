# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Nothing here is imported by the app.

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "SYNC_APP_NAME": "App display name (default: connector-sync).",
    "SYNC_LOG_LEVEL": "Logging level (default: INFO).",
    # Connectors
    "SYNC_CONSOLE_ENABLED": "Run the interactive console (true/false, default: true).",
    # Paths (gitignored)
    "SYNC_DATA_DIR": "Local data directory (default: .local/connector_sync).",
    "SYNC_STORAGE_PATH": "SQLite key-value store path (default: <data_dir>/storage.sqlite3).",
    "SYNC_EXPORT_DIR": "Where /export writes files (default: <data_dir>/exports).",
    # Behaviour
    "SYNC_DUE_SOON_DAYS": "Days ahead a deadline counts as due soon (default: 1).",
    "SYNC_SEED_ON_EMPTY": "Create the demo team and tasks on first start (true/false, default: true).",
}
