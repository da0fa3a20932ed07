import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

import pydantic
from fastapi import Request
from sqlalchemy.exc import DBAPIError

from waitlist.core.config import Settings
from waitlist.core.exceptions import (
    STORE_ERRORS,
    ConfigurationError,
    DuplicateSignupError,
    RateLimitError,
    StoreError,
    ValidationError,
    VerificationError,
)
from waitlist.core.rate_limiter import SignupRateLimiter
from waitlist.models import SignupStatus
from waitlist.repositories.signup_repository import Conflict, Failure, is_undefined_column
from waitlist.repositories.unit_of_work import AbstractUnitOfWork
from waitlist.schemas.waitlist import INVALID_EMAIL_MESSAGE, WaitlistSignupCreate
from waitlist.services.attribution import VisitorIdentity, client_ip, collect_attribution, hash_ip
from waitlist.services.email import EmailService
from waitlist.services.turnstile import TurnstileVerifier

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Unable to save your email right now."
SCHEMA_OUTDATED_MESSAGE = "Waitlist schema is out of date."


@dataclass(frozen=True)
class SignupOutcome:
    message: str
    email_status: str


def parse_signup(payload: Any) -> WaitlistSignupCreate:
    """Validate a decoded JSON body. Raises ValidationError before any I/O."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload.")
    try:
        return WaitlistSignupCreate.model_validate(payload)
    except pydantic.ValidationError as e:
        for error in e.errors():
            if error.get("loc") == ("email",):
                raise ValidationError(INVALID_EMAIL_MESSAGE) from e
        raise ValidationError("Invalid JSON payload.") from e


class WaitlistService:
    """
    The signup pipeline: verify the visitor is human, provision the table,
    reject duplicates, apply the per-IP rate limit, store the row and send
    the confirmation email.
    """

    def __init__(
        self,
        uow: AbstractUnitOfWork,
        settings: Settings,
        verifier: TurnstileVerifier,
        email_service: EmailService,
    ):
        self.uow = uow
        self.settings = settings
        self.verifier = verifier
        self.email_service = email_service
        self.rate_limiter = SignupRateLimiter(
            uow.signups,
            limit=settings.RATE_LIMIT_MAX,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        )

    @property
    def duplicate_message(self) -> str:
        return f"You're already on the {self.settings.PROJECT_NAME} waitlist."

    @property
    def success_message(self) -> str:
        return f"You're on the {self.settings.PROJECT_NAME} waitlist."

    def _require_config(self) -> None:
        for name in ("TURNSTILE_SECRET", "IP_SALT"):
            if not getattr(self.settings, name).strip():
                logger.error(f"{name} is not configured")
                raise ConfigurationError(f"{name} is not configured.")

    async def _store_failure(self, e: Exception) -> StoreError:
        await self.uow.rollback()
        logger.error(f"Waitlist store failure: {e}", exc_info=e)
        if isinstance(e, DBAPIError) and is_undefined_column(e):
            return StoreError(SCHEMA_OUTDATED_MESSAGE)
        return StoreError(SAVE_FAILED_MESSAGE)

    async def signup(
        self, request: Request, payload: WaitlistSignupCreate, identity: VisitorIdentity
    ) -> SignupOutcome:
        if not payload.turnstile_token:
            raise VerificationError("Verification token is required.", status_code=400)

        self._require_config()

        ip = client_ip(request)
        if not await self.verifier.verify(payload.turnstile_token, ip):
            logger.info(f"Turnstile verification failed for {payload.email_normalized}")
            raise VerificationError("Verification failed.")

        signups = self.uow.signups
        try:
            await signups.ensure_schema()

            if await signups.email_exists(payload.email_normalized):
                logger.info(f"Duplicate waitlist signup for {payload.email_normalized}")
                raise DuplicateSignupError(self.duplicate_message)

            created_at = datetime.now(timezone.utc)
            ip_hash = hash_ip(ip, self.settings.IP_SALT.strip())
            status, block_reason = await self.rate_limiter.check(ip_hash, now=created_at)
        except STORE_ERRORS as e:
            raise await self._store_failure(e)

        values: Dict[str, Any] = {
            "email": payload.email,
            "email_normalized": payload.email_normalized,
            "created_at": created_at,
            "cookie_id": identity.cookie_id,
            "ip_hash": ip_hash,
            "status": status,
            "block_reason": block_reason,
            **collect_attribution(request, payload),
        }

        result = await signups.insert_signup(values)
        if isinstance(result, Conflict):
            # A concurrent request stored the same email between our check and insert.
            await self.uow.rollback()
            logger.info(f"Duplicate waitlist signup (insert race) for {payload.email_normalized}")
            raise DuplicateSignupError(self.duplicate_message)
        if isinstance(result, Failure):
            raise await self._store_failure(result.cause)

        try:
            await self.uow.commit()
        except STORE_ERRORS as e:
            raise await self._store_failure(e)

        if status == SignupStatus.BLOCKED:
            raise RateLimitError(
                "Too many attempts. Please try again later.",
                headers={"Retry-After": str(self.settings.RATE_LIMIT_WINDOW_SECONDS)},
            )

        logger.info(f"Waitlist signup {result.id} stored for {payload.email_normalized}")
        email_status = await self.email_service.send_waitlist_confirmation(payload.email)
        return SignupOutcome(message=self.success_message, email_status=email_status)
