"""Verifier callback and maintenance endpoints."""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ...domain.services.publication_service import CallbackResult, InvalidRequestError, PublicationService
from ...infrastructure.config import ForumConfig
from ...infrastructure.dependencies import get_config, get_publication_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["verification"])


class CallbackRequest(BaseModel):
    """Proof posted by the external verifier."""

    proof: Dict[str, Any] = Field(default_factory=dict)
    public_signals: List[str] = Field(default_factory=list, alias="publicSignals")

    class Config:
        """Pydantic model configuration."""
        populate_by_name = True


class SweepRequest(BaseModel):
    """Parameters of a stale-pending sweep."""

    older_than_seconds: Optional[int] = Field(None, alias="olderThanSeconds", ge=0)

    class Config:
        """Pydantic model configuration."""
        populate_by_name = True


def _respond(result: CallbackResult) -> JSONResponse:
    return JSONResponse(
        status_code=200 if result.succeeded else 400,
        content=result.to_dict(),
    )


@router.post("/verify/post")
async def verify_post(
    request: CallbackRequest,
    service: PublicationService = Depends(get_publication_service),
) -> JSONResponse:
    """Verifier callback for a pending post."""
    result = await service.handle_post_callback(request.proof, request.public_signals)
    return _respond(result)


@router.post("/verify/comment")
async def verify_comment(
    request: CallbackRequest,
    service: PublicationService = Depends(get_publication_service),
) -> JSONResponse:
    """Verifier callback for a pending comment."""
    result = await service.handle_comment_callback(request.proof, request.public_signals)
    return _respond(result)


@router.post("/verification/sweep")
async def sweep_pending(
    request: Optional[SweepRequest] = None,
    service: PublicationService = Depends(get_publication_service),
    config: ForumConfig = Depends(get_config),
) -> Dict[str, Any]:
    """Fail entities whose verification never completed.

    The age threshold may be raised above the configured TTL but never
    lowered, so live verification sessions cannot be cut short.
    """
    seconds = config.pending_ttl_seconds
    if request is not None and request.older_than_seconds is not None:
        if request.older_than_seconds < config.pending_ttl_seconds:
            logger.warning(f"⚠️ Rejected sweep below the pending TTL: {request.older_than_seconds}s")
            raise InvalidRequestError(
                f"olderThanSeconds must be at least {config.pending_ttl_seconds}"
            )
        seconds = request.older_than_seconds
    expired = await service.expire_stale_pending(timedelta(seconds=seconds))
    return {"olderThanSeconds": seconds, "expired": expired}
