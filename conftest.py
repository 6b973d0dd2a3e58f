"""Root conftest.

``listing_chat.config`` builds its Settings at import time and requires the
Postgres credentials and a JWT secret, so the test environment file has to
be in ``os.environ`` before any test module imports the app.
"""
from __future__ import annotations

import os
from pathlib import Path

ENV_FILE = Path(__file__).resolve().parent / ".env.test"


def _load_env_file(path: Path) -> None:
    if not path.is_file():
        return
    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        # Values exported by CI win over the checked-in defaults.
        os.environ.setdefault(key.strip(), value.strip())


_load_env_file(ENV_FILE)
