import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

_LOGGER_NAME = "alert_file_logger"


def _ensure_logger(path: str) -> logging.Logger:
    logger = logging.getLogger(_LOGGER_NAME)
    target = os.path.abspath(path)
    current = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    if current and current[0].baseFilename == target:
        return logger
    for h in current:
        logger.removeHandler(h)
        h.close()
    os.makedirs(os.path.dirname(target) or '.', exist_ok=True)
    handler = logging.FileHandler(target, encoding='utf-8')
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    # Do not propagate to root to avoid duplicate terminal output
    logger.propagate = False
    return logger


def log_alert_event(event: str, payload: Optional[Dict[str, Any]] = None, path: Optional[str] = None) -> None:
    """Append one JSON line with timestamp, event type, and payload to the alert audit log.

    event: short label, e.g. 'alert.dispatched', 'alert.failed', 'check.complete'
    payload: JSON-serializable dict
    path: audit file; nothing is written when it is empty
    """
    if not path:
        return
    try:
        logger = _ensure_logger(path)
        line = {
            "ts": datetime.utcnow().isoformat() + 'Z',
            "event": event,
            "payload": payload or {},
        }
        logger.info(json.dumps(line, ensure_ascii=False, default=str))
    except OSError:
        # Audit entries are advisory; the alert itself has already been handled
        logging.warning("Could not write alert audit entry", exc_info=True)
