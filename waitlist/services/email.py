import logging
from datetime import datetime

import resend
from starlette.concurrency import run_in_threadpool

from ..core.config import Settings
from ..core.exceptions import NotifyError

logger = logging.getLogger(__name__)


class EmailStatus:
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


class EmailService:
    """Sends the waitlist confirmation email through Resend."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.enabled = bool(settings.RESEND_API_KEY and settings.WAITLIST_EMAIL_FROM)
        if self.enabled:
            resend.api_key = settings.RESEND_API_KEY

    def _confirmation_params(self, email: str) -> "resend.Emails.SendParams":
        project = self.settings.PROJECT_NAME
        text_content = f"""Hey,

Thanks for joining the {project} waitlist. You're on the list, and we'll email you as soon as your spot opens up.

If you didn't sign up, you can safely ignore this email.

---
You're getting this email because this address was added to the {project} waitlist.
© {datetime.now().year} {project}. All rights reserved."""

        params: resend.Emails.SendParams = {
            "from": self.settings.WAITLIST_EMAIL_FROM,
            "to": [email],
            "subject": f"You're on the {project} waitlist",
            "text": text_content,
        }
        if self.settings.WAITLIST_EMAIL_REPLY_TO:
            params["reply_to"] = [self.settings.WAITLIST_EMAIL_REPLY_TO]
        return params

    def _send(self, email: str) -> str:
        email_result = resend.Emails.send(self._confirmation_params(email))
        resend_id = email_result.get("id") if email_result else None
        if not resend_id:
            raise NotifyError(f"Resend returned no message id: {email_result}")
        return resend_id

    async def send_waitlist_confirmation(self, email: str) -> str:
        """
        Send the confirmation email and report the outcome.

        Returns one of EmailStatus.SENT, SKIPPED or FAILED. Never raises, so a
        delivery problem can not undo a signup that is already stored.
        """
        if not self.enabled:
            logger.info(f"Email provider not configured, skipping confirmation to {email}")
            return EmailStatus.SKIPPED

        try:
            resend_id = await run_in_threadpool(self._send, email)
        except Exception as e:
            logger.error(f"Failed to send waitlist confirmation to {email}: {str(e)}")
            return EmailStatus.FAILED

        logger.info(f"Waitlist confirmation sent to {email}, ID: {resend_id}")
        return EmailStatus.SENT
