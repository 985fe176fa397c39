"""
Integration tests for the Cafe24 launch endpoint
"""
import time
from urllib.parse import parse_qs, urlencode, urlsplit

import pytest

from funding_pricer.auth.session import SESSION_COOKIE_NAME
from funding_pricer.database.operations import ShopRepository

LAUNCH_PATH = "/api/auth/session-from-cafe24"


@pytest.fixture
def launch_params():
    def _params(**overrides):
        params = {
            "is_multi_shop": "T",
            "lang": "ko_KR",
            "mall_id": "testmall",
            "shop_no": "1",
            "timestamp": str(int(time.time())),
            "user_id": "admin",
            "user_name": "Admin",
            "user_type": "A",
        }
        params.update(overrides)
        return params
    return _params


class TestLaunch:
    """Test GET /api/auth/session-from-cafe24"""

    def test_known_tenant_gets_session(self, client, shop, launch_params, sign_launch_query,
                                       session_manager):
        query = sign_launch_query(launch_params())

        response = client.get(f"{LAUNCH_PATH}?{query}", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "https://app.example.com/dashboard?mall_id=testmall"

        token = response.cookies.get(SESSION_COOKIE_NAME)
        payload = session_manager.verify_session(token)
        assert payload["mall_id"] == "testmall"
        assert payload["user_id"] == "admin"

    def test_first_run_goes_to_oauth(self, client, launch_params, sign_launch_query):
        query = sign_launch_query(launch_params())

        response = client.get(f"{LAUNCH_PATH}?{query}", follow_redirects=False)

        assert response.status_code == 307
        location = urlsplit(response.headers["location"])
        assert location.path == "/"
        assert parse_qs(location.query) == {"mall_id": ["testmall"], "oauth_required": ["true"]}
        assert SESSION_COOKIE_NAME not in response.cookies

    @pytest.mark.parametrize("missing, code", [
        ("mall_id", "MISSING_MALL_ID"),
        ("user_id", "MISSING_USER_ID"),
        ("timestamp", "MISSING_TIMESTAMP"),
    ])
    def test_missing_parameter(self, client, launch_params, sign_launch_query, missing, code):
        params = launch_params()
        del params[missing]

        response = client.get(f"{LAUNCH_PATH}?{sign_launch_query(params)}", follow_redirects=False)

        assert response.status_code == 400
        assert response.json()["code"] == code

    def test_tampered_query(self, client, shop, launch_params, sign_launch_query):
        query = sign_launch_query(launch_params()).replace("user_id=admin", "user_id=intruder")

        response = client.get(f"{LAUNCH_PATH}?{query}", follow_redirects=False)

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_HMAC"
        assert SESSION_COOKIE_NAME not in response.cookies

    def test_wrong_secret(self, client, shop, launch_params, sign_launch_query):
        query = sign_launch_query(launch_params(), secret="someone-elses-secret")

        response = client.get(f"{LAUNCH_PATH}?{query}", follow_redirects=False)

        assert response.status_code == 401

    def test_stale_timestamp(self, client, shop, launch_params, sign_launch_query):
        stale = str(int(time.time()) - 7300)
        query = sign_launch_query(launch_params(timestamp=stale))

        response = client.get(f"{LAUNCH_PATH}?{query}", follow_redirects=False)

        assert response.status_code == 401
        assert response.json()["code"] == "TIMESTAMP_TOO_OLD"

    def test_missing_hmac(self, client, shop, launch_params):
        response = client.get(LAUNCH_PATH, params=launch_params(), follow_redirects=False)

        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_HMAC"

    def test_unsigned_launch_in_development(self, client, shop, launch_params, settings):
        settings.allow_unsigned_launch = True

        response = client.get(LAUNCH_PATH, params=launch_params(), follow_redirects=False)

        assert response.status_code == 307
        assert SESSION_COOKIE_NAME in response.cookies

    def test_unsigned_launch_never_in_production(self, client, shop, launch_params, settings):
        settings.allow_unsigned_launch = True
        settings.environment = "production"

        response = client.get(LAUNCH_PATH, params=launch_params(), follow_redirects=False)

        assert response.status_code == 400


class TestUnsignedParameters:
    """Only parameters covered by the signature decide who is admitted"""

    def test_mall_id_appended_after_hmac(self, client, shop, db_session, launch_params,
                                         sign_launch_query):
        ShopRepository(db_session).upsert("othermall", {
            "access_token": "other-access",
            "refresh_token": "other-refresh",
            "shop_no": "1",
            "enabled": True,
        })
        query = sign_launch_query(launch_params()) + "&mall_id=othermall"

        response = client.get(f"{LAUNCH_PATH}?{query}", follow_redirects=False)

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_HMAC"
        assert SESSION_COOKIE_NAME not in response.cookies

    def test_fresh_timestamp_appended_to_stale_url(self, client, shop, launch_params,
                                                   sign_launch_query):
        stale = str(int(time.time()) - 7300)
        query = sign_launch_query(launch_params(timestamp=stale))

        stale_only = client.get(f"{LAUNCH_PATH}?{query}", follow_redirects=False)
        refreshed = client.get(f"{LAUNCH_PATH}?{query}&timestamp={int(time.time())}",
                               follow_redirects=False)

        assert stale_only.status_code == 401
        assert refreshed.status_code == 401
        assert SESSION_COOKIE_NAME not in refreshed.cookies

    def test_repeated_parameter_inside_signed_part(self, client, shop, launch_params,
                                                   sign_launch_query):
        params = list(launch_params().items()) + [("mall_id", "othermall")]

        response = client.get(f"{LAUNCH_PATH}?{sign_launch_query(params)}", follow_redirects=False)

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_HMAC"

    def test_hmac_not_last(self, client, shop, launch_params):
        query = f"hmac=abc%3D&{urlencode(launch_params())}"

        response = client.get(f"{LAUNCH_PATH}?{query}", follow_redirects=False)

        assert response.status_code == 401
        assert SESSION_COOKIE_NAME not in response.cookies

    def test_non_numeric_timestamp(self, client, shop, launch_params, sign_launch_query):
        query = sign_launch_query(launch_params(timestamp="nan"))

        response = client.get(f"{LAUNCH_PATH}?{query}", follow_redirects=False)

        assert response.status_code == 401
        assert response.json()["code"] == "TIMESTAMP_TOO_OLD"


class TestDisabledIntegration:
    def test_disabled_tenant_goes_to_oauth(self, client, shop, db_session, launch_params,
                                           sign_launch_query):
        ShopRepository(db_session).upsert("testmall", {"enabled": False})

        response = client.get(f"{LAUNCH_PATH}?{sign_launch_query(launch_params())}",
                              follow_redirects=False)

        assert response.status_code == 307
        assert "oauth_required=true" in response.headers["location"]
        assert SESSION_COOKIE_NAME not in response.cookies
