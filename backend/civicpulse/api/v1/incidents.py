"""
Incident reporting, verification and triage endpoints.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from civicpulse.api.deps import (
    get_app_config,
    get_current_principal,
    get_incident_service,
    get_optional_principal,
    get_poll_ledger,
    require_admin,
)
from civicpulse.core.config import Config
from civicpulse.core.exceptions import raise_not_found
from civicpulse.db.models import Incident
from civicpulse.schemas import (
    IncidentCreate,
    IncidentNotesUpdate,
    IncidentStatusUpdate,
    PollVoteCreate,
)
from civicpulse.security.auth import Principal
from civicpulse.services.community.incident_service import IncidentService
from civicpulse.services.community.poll_service import PollLedger
from civicpulse.services.community.verification import (
    poll_status,
    submit_poll_vote,
    visible_results,
)
from civicpulse.services.utils.clock import utc_now

router = APIRouter(prefix="/incidents")


def _for_viewer(data: Dict[str, Any], principal: Optional[Principal]) -> Dict[str, Any]:
    # Responder notes are only shown to admins.
    if principal is None or not principal.is_admin:
        data.pop("internal_notes", None)
    return data


def _present(
    incidents: IncidentService,
    ledger: PollLedger,
    incident: Incident,
    principal: Optional[Principal],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    data = _for_viewer(incidents.present(incident, now), principal)
    if principal is not None:
        data["poll_status"] = poll_status(ledger, incident.id, principal.user_id, principal.is_admin)
    return data


@router.post("", status_code=status.HTTP_201_CREATED)
async def report_incident(
    payload: IncidentCreate,
    principal: Principal = Depends(get_current_principal),
    incidents: IncidentService = Depends(get_incident_service),
) -> Dict[str, Any]:
    """
    Report a new incident.
    """
    incident = await incidents.create_incident(payload)
    return {"incident": _for_viewer(incidents.present(incident), principal), "incident_id": incident.id}


@router.get("")
async def list_incidents(
    since: Optional[datetime] = Query(None, description="Only incidents updated after this instant"),
    principal: Optional[Principal] = Depends(get_optional_principal),
    incidents: IncidentService = Depends(get_incident_service),
    ledger: PollLedger = Depends(get_poll_ledger),
    config: Config = Depends(get_app_config),
) -> Dict[str, Any]:
    """
    List incidents in triage order.

    Authenticated callers also get their poll status for each incident.
    """
    now = utc_now()
    items = incidents.list_all(since=since, now=now)
    return {
        "server_time": now.isoformat(),
        "polling_recommended_ms": config.api.polling_recommended_ms,
        "changes_only": since is not None,
        "incidents": [_present(incidents, ledger, i, principal, now) for i in items],
    }


@router.get("/groups/{group_id}")
async def get_incident_group(
    group_id: str,
    principal: Optional[Principal] = Depends(get_optional_principal),
    incidents: IncidentService = Depends(get_incident_service),
    ledger: PollLedger = Depends(get_poll_ledger),
) -> Dict[str, Any]:
    """
    All reports grouped as duplicates of the same incident.
    """
    members = incidents.list_group(group_id)
    now = utc_now()
    return {
        "group_id": group_id,
        "incidents": [_present(incidents, ledger, i, principal, now) for i in members],
    }


@router.get("/{incident_id}")
async def get_incident(
    incident_id: str,
    principal: Optional[Principal] = Depends(get_optional_principal),
    incidents: IncidentService = Depends(get_incident_service),
    ledger: PollLedger = Depends(get_poll_ledger),
) -> Dict[str, Any]:
    incident = incidents.get(incident_id)
    return {"incident": _present(incidents, ledger, incident, principal)}


@router.post("/{incident_id}/confirm")
async def confirm_incident(
    incident_id: str,
    principal: Principal = Depends(get_current_principal),
    incidents: IncidentService = Depends(get_incident_service),
) -> Dict[str, Any]:
    """
    Add a crowd confirmation (superseded by the poll endpoint).
    """
    incident = incidents.confirm_incident(incident_id)
    return {"incident": _for_viewer(incidents.present(incident), principal)}


@router.post("/{incident_id}/poll")
async def vote_on_incident(
    incident_id: str,
    payload: PollVoteCreate,
    principal: Principal = Depends(get_current_principal),
    incidents: IncidentService = Depends(get_incident_service),
    ledger: PollLedger = Depends(get_poll_ledger),
) -> Dict[str, Any]:
    """
    Answer the incident's verification poll.
    """
    response, results = submit_poll_vote(
        incidents, ledger, incident_id, principal.user_id, payload.choice
    )
    return {
        "poll_response": response.to_record(),
        "results": visible_results(results, principal.is_admin),
    }


@router.get("/{incident_id}/poll-results")
async def get_poll_results(
    incident_id: str,
    principal: Principal = Depends(require_admin),
    incidents: IncidentService = Depends(get_incident_service),
    ledger: PollLedger = Depends(get_poll_ledger),
) -> Dict[str, Any]:
    if not incidents.exists(incident_id):
        raise_not_found("Incident", incident_id)
    return ledger.get_results(incident_id).model_dump()


@router.patch("/{incident_id}/status")
async def update_incident_status(
    incident_id: str,
    payload: IncidentStatusUpdate,
    principal: Principal = Depends(require_admin),
    incidents: IncidentService = Depends(get_incident_service),
) -> Dict[str, Any]:
    incident = incidents.update_status(incident_id, payload.status)
    return {"incident": incidents.present(incident)}


@router.patch("/{incident_id}/notes")
async def update_incident_notes(
    incident_id: str,
    payload: IncidentNotesUpdate,
    principal: Principal = Depends(require_admin),
    incidents: IncidentService = Depends(get_incident_service),
) -> Dict[str, Any]:
    incident = incidents.update_notes(incident_id, payload.internal_notes)
    return {"incident": incidents.present(incident)}


@router.delete("/{incident_id}")
async def delete_incident(
    incident_id: str,
    principal: Principal = Depends(require_admin),
    incidents: IncidentService = Depends(get_incident_service),
) -> Dict[str, Any]:
    """
    Permanently remove an incident.
    """
    incidents.delete_incident(incident_id)
    return {"success": True, "incident_id": incident_id}
