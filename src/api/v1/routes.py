"""
API v1 routes.

Defines REST endpoints for the business trial signup API.
"""

import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from src.api.dependencies import (
    SESSION_COOKIE,
    OwnerIdentity,
    get_owner_identity,
    get_session_id,
    get_trial_service,
)
from src.api.models import CsrfTokenResponse, ErrorResponse, TrialResponse, TrialSignupRequestModel
from src.domain.exceptions import CsrfStoreError
from src.domain.models import RejectionKind, SignupContext
from src.domain.sanitizer import format_to_e164
from src.domain.trial_signup import TrialSignupService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["v1"])

REJECTION_STATUS = {
    RejectionKind.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    RejectionKind.TOO_MANY_REQUESTS: status.HTTP_429_TOO_MANY_REQUESTS,
    RejectionKind.CONFLICT: status.HTTP_409_CONFLICT,
    RejectionKind.SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@router.get(
    "/csrf-token",
    response_model=CsrfTokenResponse,
    responses={503: {"model": ErrorResponse, "description": "Token store unavailable"}},
    summary="Issue a CSRF token",
    description="Issue a CSRF token for the trial activation form. "
    "A session cookie is set when the client does not have one yet.",
)
async def issue_csrf_token(
    response: Response,
    session_id: str | None = Depends(get_session_id),
    service: TrialSignupService = Depends(get_trial_service),
) -> CsrfTokenResponse:
    if not session_id:
        session_id = secrets.token_urlsafe(32)
        response.set_cookie(
            SESSION_COOKIE, session_id, httponly=True, secure=True, samesite="strict"
        )

    try:
        token = service.issue_csrf_token(session_id)
    except CsrfStoreError:
        logger.exception("Failed to issue CSRF token")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Unable to issue security token",
        ) from None

    return CsrfTokenResponse(
        csrf_token=token,
        expires_in_seconds=service.policy.csrf_token_lifetime_seconds,
    )


@router.post(
    "/trials",
    response_model=TrialResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid signup data"},
        401: {"model": ErrorResponse, "description": "Authentication required"},
        409: {"model": ErrorResponse, "description": "Not eligible for a trial"},
        429: {"model": ErrorResponse, "description": "Too many signup attempts"},
        500: {"model": ErrorResponse, "description": "Unexpected server error"},
    },
    summary="Create a business trial",
    description="Validate the trial activation form, apply rate limiting and "
    "eligibility rules, and create a business on a trial plan.",
)
async def create_business_trial(
    request_data: TrialSignupRequestModel,
    request: Request,
    identity: OwnerIdentity = Depends(get_owner_identity),
    session_id: str | None = Depends(get_session_id),
    service: TrialSignupService = Depends(get_trial_service),
) -> TrialResponse:
    """
    Create a business with a trial plan for the authenticated owner.

    Phone numbers written without a leading "+" are formatted to E.164
    when possible before validation.
    """
    phone_number = request_data.phone_number
    if phone_number and not phone_number.startswith("+"):
        phone_number = format_to_e164(phone_number) or phone_number

    payload = {
        "business_name": request_data.business_name,
        "phone_number": phone_number,
        "subscription_tier": request_data.subscription_tier,
        "csrf_token": request_data.csrf_token,
    }
    context = SignupContext(
        owner_id=identity.owner_id,
        email=identity.email,
        session_id=session_id,
        user_agent=request.headers.get("user-agent"),
        source_address=request.client.host if request.client else None,
        interaction=request_data.interaction.to_domain() if request_data.interaction else None,
    )

    outcome = service.submit_trial_signup(payload, context)

    if outcome.record is not None:
        return TrialResponse.from_record(outcome.record)

    rejection = outcome.rejection
    headers = None
    if rejection.kind == RejectionKind.TOO_MANY_REQUESTS and "retryAfterSeconds" in rejection.details:
        headers = {"Retry-After": str(rejection.details["retryAfterSeconds"])}
    raise HTTPException(
        status_code=REJECTION_STATUS[rejection.kind],
        detail={
            "error": rejection.kind.value,
            "message": rejection.message,
            "details": rejection.details,
        },
        headers=headers,
    )
