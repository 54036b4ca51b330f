"""Close sessions that are still flagged active past their expiry.

Reads already treat such sessions as closed; this only tidies the stored
flag, e.g. from cron:  */5 * * * * python scripts/expire_sessions.py
"""

from __future__ import annotations

import importlib
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
for path in (REPO_ROOT, REPO_ROOT / "src" / "class_attendance"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from config import get_settings_module

from class_attendance.container import AttendanceRules, build_container


def main() -> None:
    settings = importlib.import_module(get_settings_module())
    logging.basicConfig(level=getattr(settings, "LOG_LEVEL", "INFO"))

    container = build_container(db_config=dict(settings.DB_CONFIG), rules=AttendanceRules.from_settings(settings))
    closed = container.session_service.expire_stale_sessions()
    print(f"OK: closed {closed} expired session(s)")


if __name__ == "__main__":
    main()
