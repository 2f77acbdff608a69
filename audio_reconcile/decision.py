from __future__ import annotations

from typing import Optional, Tuple

from .models import Decision, ExecutionMode

REASON_NONE = ""
REASON_BELOW_THRESHOLD = "below-threshold-or-no-proposal"
REASON_MANUAL_CONFIRMATION = "manual-confirmation"
REASON_NO_PROPOSAL = "no-proposal"
REASON_ALREADY_MATCHING = "already-matching"


def decide(
    mode: ExecutionMode,
    score: float,
    threshold: float,
    has_proposal: bool,
    *,
    local_name: Optional[str] = None,
    proposed_name: Optional[str] = None,
) -> Tuple[Decision, str]:
    """Map a final score to rename / prompt / skip for the given execution mode."""
    if local_name is not None and proposed_name is not None:
        if local_name.strip().casefold() == proposed_name.strip().casefold():
            return Decision.SKIP, REASON_ALREADY_MATCHING

    confident = has_proposal and score >= threshold
    if mode is ExecutionMode.AUTOMATIC:
        if confident:
            return Decision.RENAME, REASON_NONE
        return Decision.SKIP, REASON_BELOW_THRESHOLD
    if mode is ExecutionMode.SMART:
        if confident:
            return Decision.RENAME, REASON_NONE
        if has_proposal:
            return Decision.PROMPT, REASON_MANUAL_CONFIRMATION
        return Decision.PROMPT, REASON_NO_PROPOSAL
    if has_proposal:
        return Decision.PROMPT, REASON_MANUAL_CONFIRMATION
    return Decision.SKIP, REASON_NO_PROPOSAL
