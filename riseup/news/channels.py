"""User suggestions for new news channels, queued as pending for review."""

import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from riseup.database import ChannelSuggestionRepository
from riseup.schemas import ChannelSuggestion, ChannelSuggestionInput, ChannelType, normalize_handle

logger = logging.getLogger(__name__)


class SuggestionValidationError(ValueError):
    def __init__(self, details: List[Dict[str, str]]):
        self.details = details
        super().__init__("; ".join(f"{d['field']}: {d['message']}" for d in details))


def format_errors(error: ValidationError) -> List[Dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in e["loc"]) or "body",
            "message": e["msg"],
        }
        for e in error.errors()
    ]


class ChannelSuggestionService:

    def __init__(self, repository: ChannelSuggestionRepository):
        self.repository = repository

    async def submit(self, payload: Dict[str, Any]) -> ChannelSuggestion:
        try:
            data = ChannelSuggestionInput.model_validate(payload)
        except ValidationError as e:
            raise SuggestionValidationError(format_errors(e)) from e

        channel_type = ChannelType(data.type)
        suggestion = ChannelSuggestion(
            type=channel_type,
            handle=normalize_handle(data.handle, channel_type),
            url=data.url,
            reason=data.reason,
        )
        await self.repository.save(suggestion)
        logger.info(f"Channel suggestion {suggestion.id}: {suggestion.type} {suggestion.handle}")
        return suggestion

    async def pending(self, limit: int = 100) -> List[ChannelSuggestion]:
        return await self.repository.list_by_status("pending", limit)
