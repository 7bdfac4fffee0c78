"""Relay server configuration.

All settings can be overridden via environment variables.
Configuration is loaded from ~/.config/message-relay/message-relay.env.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load message-relay.env from the data directory
_env_path = Path.home() / ".config" / "message-relay" / "message-relay.env"
load_dotenv(_env_path)

# --- Server ---
RELAY_HOST = os.environ.get("RELAY_HOST", "0.0.0.0")
RELAY_PORT = int(os.environ.get("RELAY_PORT", "8081"))

# URL path the debugger/app clients upgrade on
MESSAGE_PATH = os.environ.get("RELAY_MESSAGE_PATH", "/message")

# --- Editor integration ---
# Directories the open-stack-frame handler treats as project roots.
WATCH_FOLDERS = [
    p for p in os.environ.get("RELAY_WATCH_FOLDERS", os.getcwd()).split(os.pathsep) if p
]

# --- Logging ---
LOG_LEVEL = os.environ.get("RELAY_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.environ.get("RELAY_LOG_FILE", "")
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"
