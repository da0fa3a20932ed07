from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from waitlist.core.api_auth import get_stats_token
from waitlist.core.config import Settings, get_settings
from waitlist.core.exceptions import ConfigurationError, ValidationError, WaitlistError
from waitlist.core.service_dependencies import get_stats_service, get_waitlist_service
from waitlist.schemas.waitlist import SignupResponse, SiteKeyResponse, WaitlistStats, clean_string
from waitlist.services.attribution import resolve_identity, set_identity_cookie
from waitlist.services.stats_service import StatsService
from waitlist.services.waitlist_service import WaitlistService, parse_signup

router = APIRouter(prefix="/api", tags=["waitlist"])


@router.get(
    "/waitlist",
    response_model=SiteKeyResponse,
    summary="Get Turnstile Site Key",
    responses={500: {"description": "Site key not configured"}},
)
async def get_site_key(response: Response, settings: Settings = Depends(get_settings)):
    """Public Turnstile site key the landing page needs to render the challenge."""
    site_key = clean_string(settings.TURNSTILE_SITE_KEY, 256)
    if not site_key:
        raise ConfigurationError("TURNSTILE_SITE_KEY is not configured.")

    response.headers["Cache-Control"] = "no-store"
    return SiteKeyResponse(turnstileSiteKey=site_key)


@router.post(
    "/waitlist",
    response_model=SignupResponse,
    response_model_exclude_none=True,
    summary="Join the Waitlist",
    responses={
        200: {
            "description": "Signup recorded",
            "content": {
                "application/json": {
                    "example": {
                        "ok": True,
                        "message": "You're on the Velocity Funds waitlist.",
                        "email_status": "sent",
                    }
                }
            },
        },
        400: {"description": "Invalid payload, email or missing verification token"},
        403: {"description": "Bot verification failed"},
        409: {"description": "Email already on the waitlist"},
        429: {"description": "Too many submissions from this address"},
        500: {"description": "Misconfiguration or store failure"},
    },
)
async def join_waitlist(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    waitlist_service: WaitlistService = Depends(get_waitlist_service),
):
    """
    Add an email to the waitlist.

    ## Body
    ```json
    {
        "email": "a@example.com",
        "turnstileToken": "<token from the Turnstile widget>",
        "page_url": "https://example.com/?utm_source=x",
        "utm": {"source": "x", "medium": "y"},
        "locale": "en-US",
        "timezone": "Europe/Madrid",
        "client_time": "2024-01-15T10:30:00Z",
        "cookies_enabled": true
    }
    ```
    The flat form (`referrer`, `landing_path`, `utm_source`, ...) is accepted too.
    A visitor identity cookie is set when the request carries none.
    """
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON payload.")

    payload = parse_signup(body)
    identity = resolve_identity(request, payload, settings.IDENTITY_COOKIE_NAME)

    try:
        outcome = await waitlist_service.signup(request, payload, identity)
    except WaitlistError as e:
        # Rejections after validation still hand the visitor their identity cookie.
        carrier = Response()
        set_identity_cookie(carrier, request, identity, settings)
        if "set-cookie" in carrier.headers:
            e.headers["set-cookie"] = carrier.headers["set-cookie"]
        raise

    set_identity_cookie(response, request, identity, settings)
    return SignupResponse(ok=True, message=outcome.message, email_status=outcome.email_status)


@router.get(
    "/waitlist-stats",
    response_model=WaitlistStats,
    summary="Waitlist Statistics",
    responses={
        401: {"description": "Missing or wrong admin token"},
        500: {"description": "Stats token not configured or store failure"},
    },
)
async def get_waitlist_stats(
    token: Optional[str] = Depends(get_stats_token),
    stats_service: StatsService = Depends(get_stats_service),
):
    """
    Totals, per-day counts (30 most recent days) and the 200 latest signups.

    Authenticate with `Authorization: Bearer <token>`, `X-Admin-Token: <token>`
    or `?token=<token>`.
    """
    return await stats_service.get_stats(token)
