"""
Health check endpoint for monitoring and uptime.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from civicpulse.api.deps import get_incident_service, get_poll_ledger
from civicpulse.services.community.incident_service import IncidentService
from civicpulse.services.community.poll_service import PollLedger
from civicpulse.services.utils.clock import utc_now

router = APIRouter()


@router.get("/health")
async def health_check(
    incidents: IncidentService = Depends(get_incident_service),
    ledger: PollLedger = Depends(get_poll_ledger),
) -> Dict[str, Any]:
    """
    Basic liveness check with store statistics.
    """
    return {
        "ok": True,
        "status": "live",
        "time": utc_now().isoformat(),
        "incidents": len(incidents),
        "pending_flush": incidents.pending_flush or ledger.flusher.is_dirty,
    }
