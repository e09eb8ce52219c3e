"""
Structured JSON audit trail for authentication events.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def utc_now() -> str:
    """ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class AuditLogger:
    """
    Appends one JSON object per line to a .jsonl file.
    Register, login, refresh and logout attempts are all recorded.
    A None path turns auditing off.
    """

    def __init__(self, log_path: Optional[Path] = None):
        self.log_path = Path(log_path) if log_path else None
        if self.log_path:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: str, user_id: str = None, email: str = None, **extra):
        """Append one audit entry. Extra kwargs are merged in."""
        if not self.log_path:
            return
        entry = {
            "ts": utc_now(),
            "event": event,
            "user_id": user_id,
            "email": email,
        }
        for k, v in extra.items():
            if v is not None:
                entry[k] = v

        try:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.error(f"Failed to write audit log: {e}")
