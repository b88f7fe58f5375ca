"""
FastAPI app for the profile merge service.

Endpoints:
- POST /functions/link_guest_profile: merge guest rows into a user
- GET /profiles/{user_id}/linked: whether merged data exists for a user
- GET /health: liveness plus database ping

Run with: uvicorn --factory session_linker.server.app:create_app
"""

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from ..config import LinkerSettings, get_settings, validate_config_on_startup
from ..errors import GuestProfileNotFoundError, MergeError
from ..logger import setup_logging
from ..models import utc_now
from .auth import verify_token
from .merge import ProfileMergeService
from .models import (
    ErrorResponse,
    HealthResponse,
    LinkedProfileResponse,
    LinkGuestProfileRequest,
    LinkGuestProfileResponse,
)
from .repository import MongoProfileRepository

logger = logging.getLogger(__name__)


def get_merge_service(request: Request) -> ProfileMergeService:
    return request.app.state.merge_service


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def create_app(
    merge_service: Optional[ProfileMergeService] = None,
    settings: Optional[LinkerSettings] = None,
) -> FastAPI:
    """
    Build the merge service app.

    Args:
        merge_service: Service to use (defaults to a Mongo-backed one)
        settings: Settings override (defaults to get_settings())
    """
    settings = settings or get_settings()
    if merge_service is None:
        setup_logging(settings.log_level, settings.log_format)
        validate_config_on_startup(settings)
        merge_service = ProfileMergeService(
            MongoProfileRepository(settings.mongodb_uri, database=settings.mongo_db_name)
        )

    app = FastAPI(title="Profile Merge Service", version="0.1.0")
    app.state.merge_service = merge_service
    app.dependency_overrides[get_settings] = lambda: settings

    @app.post(
        "/functions/link_guest_profile",
        response_model=LinkGuestProfileResponse,
        responses={code: {"model": ErrorResponse} for code in (400, 404, 500)},
        dependencies=[Depends(verify_token)],
    )
    def link_guest_profile(
        body: LinkGuestProfileRequest,
        service: ProfileMergeService = Depends(get_merge_service),
    ):
        if not body.user_id or not body.session_id:
            return _error(400, "Missing required fields: sessionId and userId are required")

        try:
            result = service.link_guest_profile(body.user_id, body.session_id)
        except GuestProfileNotFoundError:
            return _error(404, "No temporary profile found with the provided session ID")
        except MergeError as e:
            logger.error(f"Error linking guest profile: {e}")
            return _error(500, str(e))

        return LinkGuestProfileResponse(
            success=True,
            message="Successfully linked guest profile to user",
            result=result.to_dict(),
        )

    @app.get(
        "/profiles/{user_id}/linked",
        response_model=LinkedProfileResponse,
        dependencies=[Depends(verify_token)],
    )
    def linked_profile(
        user_id: str,
        service: ProfileMergeService = Depends(get_merge_service),
    ):
        try:
            exists = service.has_linked_profile(user_id)
        except Exception as e:
            logger.error(f"Error checking linked profile for user {user_id}: {e}")
            return _error(503, "Profile storage unavailable")
        return LinkedProfileResponse(user_id=user_id, exists=exists)

    @app.get("/health", response_model=HealthResponse)
    def health(service: ProfileMergeService = Depends(get_merge_service)):
        database_ok = service.ping()
        return HealthResponse(
            status="healthy" if database_ok else "degraded",
            timestamp=utc_now(),
            database="connected" if database_ok else "unreachable",
        )

    return app
