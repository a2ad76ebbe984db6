"""Export a finished competition session as JSON.

The document holds the run counters, every message in log order, the
targets adjusted by annotation and the summary of the last run::

    {
      "competition_id": "...",
      "run_number": 3,
      "max_runs_allowed": 10,
      "highest_severity": "Warning",
      "messages": [...],
      "adjusted_targets": [...],
      "last_run": {...}
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from perfrival.limits import CompetitionTarget
from perfrival.state import CompetitionState


def session_to_dict(
    state: CompetitionState,
    *,
    competition_id: str = "",
    adjusted_targets: Iterable[CompetitionTarget] = (),
) -> dict[str, Any]:
    highest = state.highest_message_severity
    summary = state.last_run_summary
    return {
        "competition_id": competition_id,
        "phase": state.phase.value,
        "run_number": state.run_number,
        "max_runs_allowed": state.max_runs_allowed,
        "highest_severity": highest.label if highest is not None else None,
        "messages": [m.to_dict() for m in state.messages()],
        "adjusted_targets": [t.to_dict() for t in adjusted_targets],
        "last_run": summary.to_dict() if summary is not None else None,
    }


def export_json(
    path: Path,
    state: CompetitionState,
    *,
    competition_id: str = "",
    adjusted_targets: Iterable[CompetitionTarget] = (),
) -> None:
    """Write the session document to *path*."""
    data = session_to_dict(
        state, competition_id=competition_id, adjusted_targets=adjusted_targets
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
