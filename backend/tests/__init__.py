# Ensure the `backend` directory is importable so `lifelog` resolves
from __future__ import annotations

import sys
import tempfile
from pathlib import Path

# Add the backend directory to PYTHONPATH so imports like `from lifelog.*` work
ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT_DIR))

# Use an in-memory SQLite DB and throwaway directories during tests unless overridden
import os
_TEST_ROOT = Path(tempfile.gettempdir()) / "lifelog-tests"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DB_ECHO", "0")
os.environ.setdefault("UPLOADS_DIR", str(_TEST_ROOT / "uploads"))
os.environ.setdefault("LOG_DIR", str(_TEST_ROOT / "logs"))
