from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator

EMAIL_MAX_LENGTH = 320
INVALID_EMAIL_MESSAGE = "A valid email address is required."

# Maximum stored length per optional field. Longer values are truncated.
FIELD_LIMITS = {
    "turnstile_token": 2048,
    "referrer": 2048,
    "landing_path": 2048,
    "page_url": 2048,
    "utm_source": 256,
    "utm_medium": 256,
    "utm_campaign": 256,
    "utm_content": 512,
    "utm_term": 512,
    "cookie_id": 128,
    "locale": 64,
    "timezone": 64,
    "client_time": 64,
}

UTM_LIMITS = {"source": 256, "medium": 256, "campaign": 256, "content": 512, "term": 512}


def clean_string(value, max_len: int = 2048) -> Optional[str]:
    """Trim a client-supplied string; non-strings and blanks become None."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return trimmed[:max_len]


class UTMParams(BaseModel):
    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    content: Optional[str] = None
    term: Optional[str] = None

    @field_validator("source", "medium", "campaign", "content", "term", mode="before")
    @classmethod
    def clean(cls, value, info):
        return clean_string(value, UTM_LIMITS[info.field_name])

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class WaitlistSignupCreate(BaseModel):
    """Signup payload posted by the landing page."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: EmailStr = Field("", validate_default=True)
    turnstile_token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("turnstileToken", "turnstile_token", "cf-turnstile-response"),
    )

    # Flat attribution fields
    referrer: Optional[str] = None
    landing_path: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_content: Optional[str] = None
    utm_term: Optional[str] = None

    # Richer client context
    cookie_id: Optional[str] = None
    page_url: Optional[str] = None
    utm: Optional[UTMParams] = None
    locale: Optional[str] = None
    timezone: Optional[str] = None
    client_time: Optional[str] = None
    cookies_enabled: Optional[bool] = None

    @field_validator("email", mode="before")
    @classmethod
    def trim_email(cls, value):
        # EmailStr does the address check; the domain comes back lower-cased.
        if not isinstance(value, str):
            raise ValueError(INVALID_EMAIL_MESSAGE)
        email = value.strip()
        if len(email) > EMAIL_MAX_LENGTH:
            raise ValueError(INVALID_EMAIL_MESSAGE)
        return email

    @field_validator(*FIELD_LIMITS.keys(), mode="before")
    @classmethod
    def clean_optional(cls, value, info):
        if info.field_name == "client_time" and isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        return clean_string(value, FIELD_LIMITS[info.field_name])

    @field_validator("utm", mode="before")
    @classmethod
    def clean_utm(cls, value):
        return value if isinstance(value, dict) else None

    @field_validator("cookies_enabled", mode="before")
    @classmethod
    def clean_bool(cls, value):
        return value if isinstance(value, bool) else None

    @property
    def email_normalized(self) -> str:
        return self.email.lower()


class SignupResponse(BaseModel):
    ok: bool = True
    message: str
    email_status: Optional[str] = None


class SiteKeyResponse(BaseModel):
    turnstileSiteKey: str


class DailyCount(BaseModel):
    day: str
    count: int


class RecentSignup(BaseModel):
    email: str
    created_at: str


class WaitlistStats(BaseModel):
    total: int
    by_day: List[DailyCount]
    recent: List[RecentSignup]
