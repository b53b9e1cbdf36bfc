"""Channel suggestion router."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from riseup.api.dependencies import Container, rate_limited
from riseup.api.schemas import SuggestionResponse
from riseup.database import StorageUnavailableError
from riseup.news.channels import SuggestionValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/channels/suggest",
    response_model=SuggestionResponse,
    status_code=201,
    dependencies=[Depends(rate_limited("channels"))],
)
async def suggest_channel(container: Container, payload: Dict[str, Any] = Body(...)):
    # Validated by the service so field errors come back in one shape
    try:
        suggestion = await container.channel_service.submit(payload)
    except SuggestionValidationError as e:
        raise HTTPException(status_code=400, detail={"error": "Validation failed", "details": e.details})
    except StorageUnavailableError as e:
        logger.error(f"[FAIL] Channel suggestion: {e}")
        raise HTTPException(status_code=503, detail={"error": "Storage temporarily unavailable"})

    return SuggestionResponse(id=suggestion.id, status=suggestion.status)
