import hashlib

from fastapi import Response
from starlette.requests import Request

from waitlist.core.config import Settings
from waitlist.schemas.waitlist import WaitlistSignupCreate
from waitlist.services.attribution import (
    client_ip,
    collect_attribution,
    geolocation,
    hash_ip,
    resolve_identity,
    resolve_utm,
    set_identity_cookie,
)


def make_request(headers=None, scheme="http", client=("10.0.0.1", 5000)):
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/api/waitlist",
            "query_string": b"",
            "headers": raw_headers,
            "scheme": scheme,
            "server": ("test", 443 if scheme == "https" else 80),
            "client": client,
        }
    )


def make_payload(**fields):
    return WaitlistSignupCreate.model_validate({"email": "a@example.com", "turnstileToken": "tok", **fields})


class TestUtmPrecedence:
    def test_explicit_utm_object_wins(self):
        payload = make_payload(
            utm={"source": "newsletter", "campaign": "launch"},
            utm_source="flat",
            page_url="https://example.com/?utm_source=url",
        )

        assert resolve_utm(payload) == {
            "utm_source": "newsletter",
            "utm_medium": None,
            "utm_campaign": "launch",
            "utm_content": None,
            "utm_term": None,
        }

    def test_empty_utm_object_falls_back_to_flat_fields(self):
        payload = make_payload(utm={"source": "  "}, utm_medium="cpc")

        assert resolve_utm(payload)["utm_medium"] == "cpc"

    def test_page_url_query_is_parsed(self):
        payload = make_payload(page_url="https://example.com/pricing?utm_source=x&utm_term=fund%20raising&other=1")

        utm = resolve_utm(payload)
        assert utm["utm_source"] == "x"
        assert utm["utm_term"] == "fund raising"
        assert utm["utm_campaign"] is None

    def test_no_source_means_absent(self):
        assert resolve_utm(make_payload()) is None
        assert resolve_utm(make_payload(page_url="https://example.com/?ref=abc")) is None


class TestIdentity:
    def test_existing_cookie_is_reused(self):
        request = make_request({"Cookie": "vf_cid=abcdef12-3456"})

        identity = resolve_identity(request, make_payload(cookie_id="ignored-value"), "vf_cid")

        assert identity.cookie_id == "abcdef12-3456"
        assert identity.is_new is False

    def test_payload_cookie_id_used_when_no_cookie(self):
        identity = resolve_identity(make_request(), make_payload(cookie_id="client-generated-id"), "vf_cid")

        assert identity.cookie_id == "client-generated-id"
        assert identity.is_new is True

    def test_new_identity_is_minted(self):
        identity = resolve_identity(make_request({"Cookie": "vf_cid=bad value!"}), make_payload(), "vf_cid")

        assert identity.is_new is True
        assert len(identity.cookie_id) == 36

    def test_cookie_attributes(self):
        settings = Settings(IDENTITY_COOKIE_NAME="vf_cid", IDENTITY_COOKIE_MAX_AGE=1000)
        request = make_request(scheme="https")
        identity = resolve_identity(request, make_payload(), "vf_cid")
        response = Response()

        set_identity_cookie(response, request, identity, settings)

        cookie = response.headers["set-cookie"]
        assert cookie.startswith(f"vf_cid={identity.cookie_id}")
        assert "Max-Age=1000" in cookie
        assert "Path=/" in cookie
        assert "SameSite=lax" in cookie
        assert "Secure" in cookie

    def test_cookie_not_secure_over_plain_http(self):
        request = make_request()
        response = Response()

        set_identity_cookie(response, request, resolve_identity(request, make_payload(), "vf_cid"), Settings())

        assert "Secure" not in response.headers["set-cookie"]

    def test_no_cookie_for_returning_visitor(self):
        request = make_request({"Cookie": "vf_cid=abcdef12-3456"})
        response = Response()

        set_identity_cookie(response, request, resolve_identity(request, make_payload(), "vf_cid"), Settings())

        assert "set-cookie" not in response.headers


class TestClientIp:
    def test_prefers_cloudflare_header(self):
        request = make_request({"CF-Connecting-IP": "1.1.1.1", "X-Forwarded-For": "2.2.2.2, 3.3.3.3"})
        assert client_ip(request) == "1.1.1.1"

    def test_first_forwarded_hop(self):
        assert client_ip(make_request({"X-Forwarded-For": " 2.2.2.2 , 3.3.3.3"})) == "2.2.2.2"

    def test_peer_address(self):
        assert client_ip(make_request()) == "10.0.0.1"
        assert client_ip(make_request(client=None)) is None

    def test_hash_is_salted_sha256(self):
        assert hash_ip("1.1.1.1", "salt") == hashlib.sha256(b"1.1.1.1salt").hexdigest()
        assert hash_ip("1.1.1.1", "salt") != hash_ip("1.1.1.1", "other")
        assert hash_ip(None, "salt") is None


class TestGeolocation:
    def test_edge_headers(self):
        request = make_request(
            {
                "CF-IPCountry": "ES",
                "CF-IPCity": "Barcelona",
                "CF-IPLatitude": "41.38",
                "CF-IPLongitude": "not-a-number",
                "CF-IPContinent": "EU",
            }
        )

        geo = geolocation(request)

        assert geo["country"] == "ES"
        assert geo["city"] == "Barcelona"
        assert geo["latitude"] == 41.38
        assert geo["longitude"] is None
        assert geo["region"] is None

    def test_absent_without_edge_headers(self):
        assert all(value is None for value in geolocation(make_request()).values())


def test_collect_attribution_snapshots():
    request = make_request({"CF-IPCountry": "US", "User-Agent": "Mozilla/5.0", "Accept-Language": "en-US"})
    payload = make_payload(
        page_url="https://example.com/join?utm_source=ads",
        locale="en-US",
        timezone="America/New_York",
        cookies_enabled=True,
    )

    values = collect_attribution(request, payload)

    assert values["landing_path"] == "/join"
    assert values["utm_source"] == "ads"
    assert values["country"] == "US"
    assert values["timezone"] == "America/New_York"
    assert values["user_agent"] == "Mozilla/5.0"
    assert values["location_json"] == {"CF-IPCountry": "US"}
    assert values["client_json"]["locale"] == "en-US"
    assert values["client_json"]["cookies_enabled"] is True
    assert "ip" not in values
