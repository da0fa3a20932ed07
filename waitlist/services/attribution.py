"""
Visitor identity, source IP hashing and marketing attribution for signups.

Geolocation is never looked up here; it only comes from the headers the edge
proxy (Cloudflare) adds to the request.
"""
import hashlib
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlsplit

from fastapi import Request, Response

from waitlist.core.config import Settings
from waitlist.schemas.waitlist import UTM_LIMITS, WaitlistSignupCreate, clean_string

IDENTITY_RE = re.compile(r"^[A-Za-z0-9_-]{8,128}$")

UTM_KEYS = ("source", "medium", "campaign", "content", "term")

GEO_HEADERS = {
    "country": ("CF-IPCountry", 8),
    "region": ("CF-Region", 128),
    "city": ("CF-IPCity", 128),
    "postal_code": ("CF-Postal-Code", 32),
    "timezone": ("CF-Timezone", 64),
    "latitude": ("CF-IPLatitude", 32),
    "longitude": ("CF-IPLongitude", 32),
    "continent": ("CF-IPContinent", 8),
}


@dataclass(frozen=True)
class VisitorIdentity:
    cookie_id: str
    is_new: bool


def resolve_identity(
    request: Request, payload: WaitlistSignupCreate, cookie_name: str
) -> VisitorIdentity:
    """Use the identity cookie if present, else the client's cookie_id, else mint one."""
    cookie_value = request.cookies.get(cookie_name)
    if cookie_value and IDENTITY_RE.match(cookie_value):
        return VisitorIdentity(cookie_id=cookie_value, is_new=False)
    if payload.cookie_id and IDENTITY_RE.match(payload.cookie_id):
        return VisitorIdentity(cookie_id=payload.cookie_id, is_new=True)
    return VisitorIdentity(cookie_id=str(uuid.uuid4()), is_new=True)


def is_secure_request(request: Request) -> bool:
    forwarded_proto = request.headers.get("X-Forwarded-Proto", "")
    return request.url.scheme == "https" or forwarded_proto.split(",")[0].strip() == "https"


def set_identity_cookie(
    response: Response, request: Request, identity: VisitorIdentity, settings: Settings
) -> None:
    if not identity.is_new:
        return
    response.set_cookie(
        key=settings.IDENTITY_COOKIE_NAME,
        value=identity.cookie_id,
        max_age=settings.IDENTITY_COOKIE_MAX_AGE,
        path="/",
        samesite="lax",
        secure=is_secure_request(request),
    )


def client_ip(request: Request) -> Optional[str]:
    ip = request.headers.get("CF-Connecting-IP")
    if not ip:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            ip = forwarded_for.split(",")[0]
    if not ip and request.client:
        ip = request.client.host
    return clean_string(ip, 128)


def hash_ip(ip: Optional[str], salt: str) -> Optional[str]:
    """One-way salted hash of the source IP. The raw IP is never stored."""
    if not ip:
        return None
    return hashlib.sha256(f"{ip}{salt}".encode("utf-8")).hexdigest()


def resolve_utm(payload: WaitlistSignupCreate) -> Optional[Dict[str, Optional[str]]]:
    """
    Pick UTM parameters by precedence: the explicit `utm` object, then the
    flat `utm_*` fields, then the page URL's query string. Returns None when
    no source yields a value.
    """
    if payload.utm is not None and not payload.utm.is_empty():
        return {f"utm_{key}": getattr(payload.utm, key) for key in UTM_KEYS}

    flat = {f"utm_{key}": getattr(payload, f"utm_{key}") for key in UTM_KEYS}
    if any(flat.values()):
        return flat

    if payload.page_url:
        query = parse_qs(urlsplit(payload.page_url).query)
        from_url = {
            f"utm_{key}": clean_string((query.get(f"utm_{key}") or [None])[0], UTM_LIMITS[key])
            for key in UTM_KEYS
        }
        if any(from_url.values()):
            return from_url

    return None


def landing_path(payload: WaitlistSignupCreate) -> Optional[str]:
    if payload.landing_path:
        return payload.landing_path
    if payload.page_url:
        return clean_string(urlsplit(payload.page_url).path, 2048)
    return None


def _coordinate(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def geolocation(request: Request) -> Dict[str, Any]:
    raw = {
        field: clean_string(request.headers.get(header), max_len)
        for field, (header, max_len) in GEO_HEADERS.items()
    }
    geo: Dict[str, Any] = dict(raw)
    geo["latitude"] = _coordinate(raw["latitude"])
    geo["longitude"] = _coordinate(raw["longitude"])
    return geo


def collect_attribution(request: Request, payload: WaitlistSignupCreate) -> Dict[str, Any]:
    """Column values for attribution, geolocation and client context."""
    utm = resolve_utm(payload) or {f"utm_{key}": None for key in UTM_KEYS}
    geo = geolocation(request)
    raw_location = {
        header: request.headers.get(header)
        for header, _ in GEO_HEADERS.values()
        if request.headers.get(header) is not None
    }

    user_agent = clean_string(request.headers.get("User-Agent"), 2048)
    accept_language = clean_string(request.headers.get("Accept-Language"), 256)
    client = {
        "user_agent": user_agent,
        "accept_language": accept_language,
        "locale": payload.locale,
        "timezone": payload.timezone,
        "client_time": payload.client_time,
        "cookies_enabled": payload.cookies_enabled,
        "page_url": payload.page_url,
    }

    return {
        "referrer": payload.referrer,
        "landing_path": landing_path(payload),
        **utm,
        **geo,
        "timezone": geo["timezone"] or payload.timezone,
        "user_agent": user_agent,
        "accept_language": accept_language,
        "locale": payload.locale,
        "client_time": payload.client_time,
        "cookies_enabled": payload.cookies_enabled,
        "location_json": raw_location or None,
        "client_json": {k: v for k, v in client.items() if v is not None} or None,
    }
