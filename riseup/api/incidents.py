"""Incidents router -- map listing, user submissions, upvotes.

Error mapping:
  IncidentValidationError   -> 400
  DuplicateIncidentError    -> 409 (reason + similarity in the body)
  StorageUnavailableError   -> 503
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from riseup.api.dependencies import Container, rate_limited
from riseup.api.schemas import IncidentCreatedResponse, IncidentListResponse, UpvoteResponse
from riseup.database import StorageUnavailableError
from riseup.incidents.service import DuplicateIncidentError, IncidentValidationError
from riseup.schemas import IncidentBounds, IncidentSubmission

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/incidents", response_model=IncidentListResponse)
async def list_incidents(
    container: Container,
    type: Optional[str] = None,
    north: Optional[float] = None,
    south: Optional[float] = None,
    east: Optional[float] = None,
    west: Optional[float] = None,
):
    bounds = None
    if None not in (north, south, east, west):
        bounds = IncidentBounds(north=north, south=south, east=east, west=west)

    incidents = await container.incident_service.get_all(incident_type=type, bounds=bounds)
    return IncidentListResponse(incidents=incidents, count=len(incidents))


@router.post(
    "/incidents",
    response_model=IncidentCreatedResponse,
    status_code=201,
    dependencies=[Depends(rate_limited("incidents"))],
)
async def create_incident(submission: IncidentSubmission, container: Container):
    try:
        incident = await container.incident_service.create(submission)
    except IncidentValidationError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except DuplicateIncidentError as e:
        raise HTTPException(
            status_code=409,
            detail={
                "error": str(e),
                "duplicate": True,
                "matched_id": e.check.matched_id,
                "reason": e.check.reason,
                "similarity": e.check.similarity,
            },
        )
    except StorageUnavailableError as e:
        logger.error(f"[FAIL] Incident create: {e}")
        raise HTTPException(status_code=503, detail={"error": "Storage temporarily unavailable"})

    return IncidentCreatedResponse(incident=incident)


@router.post("/incidents/{incident_id}/upvote", response_model=UpvoteResponse)
async def upvote_incident(incident_id: str, container: Container):
    upvotes = await container.incident_service.upvote(incident_id)
    if upvotes is None:
        raise HTTPException(status_code=404, detail={"error": "Incident not found"})
    return UpvoteResponse(id=incident_id, upvotes=upvotes)
