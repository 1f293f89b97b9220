# arbbot/observe.py
"""
Logging setup and the in-memory tail of recent log lines
"""

import logging
import sys
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import List, Optional

LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
DEFAULT_LOG_CAPACITY = 50


class RecentLogHandler(logging.Handler):
    """Keeps the last `capacity` formatted log lines for the logs command"""

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY):
        super().__init__()
        self.records = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.records.append(self.format(record))
        except Exception:
            self.handleError(record)

    def lines(self, limit: Optional[int] = None) -> List[str]:
        lines = list(self.records)
        if limit is not None:
            lines = lines[-limit:]
        return lines


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[Path] = LOG_DIR,
    capacity: int = DEFAULT_LOG_CAPACITY,
) -> RecentLogHandler:
    """Stdout + dated file under logs/ + recent-lines buffer"""
    recent = RecentLogHandler(capacity)
    handlers = [logging.StreamHandler(sys.stdout), recent]

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / f"arbbot_{datetime.now().strftime('%Y%m%d')}.log"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    # web3 request logging is too chatty at INFO
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return recent
