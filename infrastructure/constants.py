from pathlib import Path

# Repo-root conventional directories/files (overrideable via workstation.yaml)
CONFIG_DIR = Path("configs")
WORKSTATION_FILE = CONFIG_DIR / "workstation.yaml"
FIXTURES_FILE = CONFIG_DIR / "fixtures.yaml"

STATE_DIR = Path(".workstation")
STORE_FILE = STATE_DIR / "session_store.json"
LOG_DIR = STATE_DIR / "logs"

# Environment overrides (loaded from .env)
ENV_API_URL = "AI_LABELING_API_URL"
ENV_API_KEY = "AI_LABELING_API_KEY"
