"""
Crowd verification: joins the poll ledger to the incident lifecycle.

A vote is recorded in the ledger, then the fresh tally is handed to the
incident engine, which escalates the incident when enough confirm votes have
arrived. Poll tallies are only shown to admins.
"""
from typing import Any, Dict, Optional, Tuple

from civicpulse.core.exceptions import raise_not_found
from civicpulse.db.models import PollResponse, PollResults
from civicpulse.services.community.incident_service import IncidentService
from civicpulse.services.community.poll_service import PollLedger


def submit_poll_vote(
    incidents: IncidentService,
    ledger: PollLedger,
    incident_id: str,
    user_id: str,
    choice: Any,
) -> Tuple[PollResponse, PollResults]:
    """
    Record a vote and apply poll-driven auto-escalation.

    Raises:
        NotFoundError: If the incident does not exist
        AlreadyVotedError: If the user already voted on this incident
        InvalidChoiceError: If ``choice`` is not a valid answer
    """
    if not incidents.exists(incident_id):
        raise_not_found("Incident", incident_id)

    response = ledger.submit_vote(incident_id, user_id, choice)
    results = ledger.get_results(incident_id)
    incidents.apply_poll_results(incident_id, results)
    return response, results


def visible_results(results: PollResults, is_admin: bool) -> Optional[Dict[str, Any]]:
    return results.model_dump() if is_admin else None


def poll_status(ledger: PollLedger, incident_id: str, user_id: str, is_admin: bool) -> Dict[str, Any]:
    """Per-user poll projection attached to presented incidents."""
    vote = ledger.get_vote(incident_id, user_id)
    return {
        "has_voted": vote is not None,
        "user_choice": vote.choice.value if vote else None,
        "results": visible_results(ledger.get_results(incident_id), is_admin),
    }
