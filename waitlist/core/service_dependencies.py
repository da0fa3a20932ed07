from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from waitlist.core.config import Settings, get_settings
from waitlist.core.database import get_db
from waitlist.repositories.unit_of_work import SqlAlchemyUnitOfWork
from waitlist.services.email import EmailService
from waitlist.services.stats_service import StatsService
from waitlist.services.turnstile import TurnstileVerifier
from waitlist.services.waitlist_service import WaitlistService


async def get_bot_verifier(settings: Settings = Depends(get_settings)) -> TurnstileVerifier:
    """Dependency to provide the Turnstile verifier."""
    return TurnstileVerifier(settings)


async def get_email_service(settings: Settings = Depends(get_settings)) -> EmailService:
    """Dependency to provide EmailService."""
    return EmailService(settings)


async def get_waitlist_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    verifier: TurnstileVerifier = Depends(get_bot_verifier),
    email_service: EmailService = Depends(get_email_service),
) -> WaitlistService:
    """Dependency to provide WaitlistService."""
    uow = SqlAlchemyUnitOfWork(db, settings.table_name)
    return WaitlistService(uow, settings, verifier, email_service)


async def get_stats_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> StatsService:
    """Dependency to provide StatsService."""
    uow = SqlAlchemyUnitOfWork(db, settings.table_name)
    return StatsService(uow, settings)
