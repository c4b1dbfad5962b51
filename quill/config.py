"""Centralized configuration for the Quill annotation bridge."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(PROJECT_ROOT / ".env")

# Shared directory used by the editor, the CLI and the external agent
QUILL_DIR = Path(os.getenv("QUILL_DIR", "~/.quill")).expanduser()
STATE_PATH = QUILL_DIR / "state.json"
EXPORT_PATH = QUILL_DIR / "document.json"
AGENT_RESPONSE_PATH = QUILL_DIR / "agent-response.json"


def bootstrap_runtime_dirs() -> None:
    QUILL_DIR.mkdir(parents=True, exist_ok=True)

# Timers
SAVE_DEBOUNCE_S = float(os.getenv("SAVE_DEBOUNCE_S", "0.5"))
AGENT_POLL_INTERVAL_S = float(os.getenv("AGENT_POLL_INTERVAL_S", "1.0"))
CLI_WATCH_INTERVAL_S = float(os.getenv("CLI_WATCH_INTERVAL_S", "2.0"))

# Agent process and notifications
AGENT_COMMAND = os.getenv("AGENT_COMMAND", "claude")
NOTIFY_COMMAND = os.getenv("NOTIFY_COMMAND", "")
CLIPBOARD_COMMAND = os.getenv("CLIPBOARD_COMMAND", "")

LOG_LEVEL = os.getenv("QUILL_LOG_LEVEL", "INFO").upper()
