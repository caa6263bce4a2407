"""
SessionStart hook

Records the new session and prints the start context (resume block or
active goals for the project containing cwd) on stdout.
"""

import json
import logging
import os
import sys
from typing import Any, Dict, Optional, TextIO

from goalos.config.settings import StoreSettings
from goalos.services.session_service import SessionService
from goalos.session.context import generate_start_context

logger = logging.getLogger(__name__)


def read_payload(stream: TextIO) -> Dict[str, Any]:
    """Hook payload from stdin; empty or invalid input yields {}"""
    raw = stream.read()
    if not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Invalid hook payload, ignoring")
        return {}
    return payload if isinstance(payload, dict) else {}


def configure_logging() -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.WARNING,
        format="[goalos] %(levelname)s: %(message)s",
    )


def payload_text(payload: Dict[str, Any], name: str) -> Optional[str]:
    """payload[name] when it is a non-empty string, else None"""
    value = payload.get(name)
    return value if isinstance(value, str) and value else None


def run(payload: Dict[str, Any], settings: Optional[StoreSettings] = None) -> str:
    sessions = SessionService(settings)
    sessions.goals.store.paths.ensure_base_dirs()

    session_id = payload_text(payload, "session_id") or "unknown"
    cwd = payload_text(payload, "cwd") or os.getcwd()

    state = sessions.start_session(session_id)
    return generate_start_context(sessions.goals, state, cwd)


def main() -> int:
    configure_logging()
    try:
        payload = read_payload(sys.stdin)
        print(run(payload))
    except Exception as e:
        logger.warning(f"SessionStart failed: {e}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
