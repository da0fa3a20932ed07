import logging
from typing import Optional

import requests
from starlette.concurrency import run_in_threadpool

from waitlist.core.config import Settings

logger = logging.getLogger(__name__)


class TurnstileVerifier:
    """Checks Cloudflare Turnstile tokens. Any ambiguous answer is a rejection."""

    def __init__(self, settings: Settings):
        self.secret = settings.TURNSTILE_SECRET.strip()
        self.url = settings.TURNSTILE_VERIFY_URL
        self.timeout = settings.TURNSTILE_TIMEOUT_SECONDS

    def _siteverify(self, token: str, remoteip: Optional[str]) -> bool:
        data = {"secret": self.secret, "response": token}

        if remoteip:
            data["remoteip"] = remoteip

        try:
            response = requests.post(self.url, data=data, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Turnstile validation error: {e}")
            return False

        if not isinstance(result, dict) or result.get("success") is not True:
            logger.info(f"Turnstile rejected token: {result.get('error-codes') if isinstance(result, dict) else result}")
            return False
        return True

    async def verify(self, token: str, remoteip: Optional[str] = None) -> bool:
        # requests is blocking; keep the event loop free while Cloudflare answers.
        return await run_in_threadpool(self._siteverify, token, remoteip)
