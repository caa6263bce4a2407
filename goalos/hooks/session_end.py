"""
SessionEnd hook

Mines the session transcript, records focus/files/tasks in the session
state and snapshots the active goal (trigger session_end).
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from goalos.config.settings import StoreSettings
from goalos.core.clock import utc_now_iso
from goalos.hooks.session_start import configure_logging, payload_text, read_payload
from goalos.hooks.transcript import TranscriptSummary, mine_transcript
from goalos.models.session_state import RecentFile
from goalos.models.snapshot import Snapshot
from goalos.services.session_service import SessionService

logger = logging.getLogger(__name__)


def _mine(transcript_path: Optional[str]) -> TranscriptSummary:
    if not transcript_path:
        return TranscriptSummary()
    path = Path(transcript_path)
    if not path.exists():
        return TranscriptSummary()
    try:
        return mine_transcript(path)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Error reading transcript {path}: {e}")
        return TranscriptSummary()


def run(payload: Dict[str, Any], settings: Optional[StoreSettings] = None) -> Optional[Snapshot]:
    """
    Returns:
        The session_end snapshot of the active goal, or None when no
        goal is active
    """
    session_id = payload_text(payload, "session_id") or "unknown"
    mined = _mine(payload_text(payload, "transcript_path"))

    sessions = SessionService(settings)
    now = utc_now_iso()
    state = sessions.end_session(
        session_id,
        focus=mined.summary or None,
        files=[RecentFile(path=p, last_edit=now) for p in mined.files] or None,
        tasks=mined.tasks or None,
    )

    goal_id = state.active_context.goal if state.active_context else ""
    if not goal_id or sessions.goals.get(goal_id) is None:
        return None

    return sessions.goals.record_session(goal_id, session_id, summary=mined.summary, files=mined.files)


def main() -> int:
    configure_logging()
    try:
        payload = read_payload(sys.stdin)
        if not payload_text(payload, "session_id"):
            logger.warning("SessionEnd: no valid payload")
            return 0
        run(payload)
        logger.info("Session state saved")
    except Exception as e:
        logger.warning(f"SessionEnd failed: {e}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
