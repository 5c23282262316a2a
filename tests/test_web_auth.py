from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from map_core.auth.store import JsonAccountStore
from map_core.utils.config import AuthSettings, LoggingSettings, Settings

HTML = {"Accept": "text/html,application/xhtml+xml"}


def make_settings(secret: str = "s3cret", admin_password: str = "admin-pass") -> Settings:
    return Settings(
        auth=AuthSettings(
            secret=secret,
            admin_password=admin_password,
            user_password="user-pass",
            bcrypt_rounds=4,
        ),
        logging=LoggingSettings(level="WARNING", format="console"),
    )


def create_test_client(tmp_dir: Path, **kwargs) -> TestClient:
    from map_web.main import create_app

    app = create_app(make_settings(**kwargs), store=JsonAccountStore(tmp_dir))
    return TestClient(app)


def redirect_query(response):
    assert response.status_code == 302, response.text
    location = urlparse(response.headers["location"])
    assert location.path == "/login"
    return parse_qs(location.query)


def test_unauthenticated_browser_redirected_to_login(tmp_path: Path):
    client = create_test_client(tmp_path)
    res = client.get("/", headers=HTML, follow_redirects=False)
    assert redirect_query(res) == {"returnUrl": ["/"]}


def test_unauthenticated_api_client_gets_401(tmp_path: Path):
    client = create_test_client(tmp_path)
    res = client.get("/", follow_redirects=False)
    assert res.status_code == 401
    assert res.json()["redirect"].startswith("/login?returnUrl=")


def test_login_page_is_public(tmp_path: Path):
    client = create_test_client(tmp_path)
    assert client.get("/login", headers=HTML).status_code == 200
    assert client.get("/signup", headers=HTML).status_code == 200


def test_admin_login_and_admin_page(tmp_path: Path):
    client = create_test_client(tmp_path)
    res = client.post("/api/auth", json={"password": "admin-pass"})
    assert res.status_code == 200, res.text
    assert res.json() == {"ok": True, "role": "admin"}

    set_cookie = res.headers["set-cookie"].lower()
    assert "map-auth=" in set_cookie
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie
    assert "max-age=604800" in set_cookie

    assert client.get("/admin", headers=HTML, follow_redirects=False).status_code == 200
    assert client.get("/", headers=HTML, follow_redirects=False).status_code == 200

    status = client.get("/api/auth").json()
    assert status["ok"] is True and status["role"] == "admin" and status["usePassword"] is True


def test_shared_user_forbidden_on_admin(tmp_path: Path):
    client = create_test_client(tmp_path)
    res = client.post("/api/auth", json={"password": "user-pass"})
    assert res.status_code == 200
    assert res.json()["role"] == "user"

    assert client.get("/", headers=HTML, follow_redirects=False).status_code == 200
    res_admin = client.get("/admin", headers=HTML, follow_redirects=False)
    assert redirect_query(res_admin) == {"returnUrl": ["/admin"], "forbidden": ["1"]}

    res_api = client.get("/admin", follow_redirects=False)
    assert res_api.status_code == 403


def test_wrong_password_rejected(tmp_path: Path):
    client = create_test_client(tmp_path)
    res = client.post("/api/auth", json={"password": "nope"})
    assert res.status_code == 401
    assert "set-cookie" not in res.headers


def test_unconfigured_secret_is_server_error(tmp_path: Path):
    client = create_test_client(tmp_path, secret="")
    res = client.post("/api/auth", json={"password": "admin-pass"})
    assert res.status_code == 500


def test_forged_cookie_is_unauthenticated(tmp_path: Path):
    client = create_test_client(tmp_path)
    client.cookies.set("map-auth", "YWRtaW46OTk5OTk5OTk5OTk5OQ.forged")
    res = client.get("/", headers=HTML, follow_redirects=False)
    assert redirect_query(res) == {"returnUrl": ["/"]}


def test_register_login_and_account_pages(tmp_path: Path):
    client = create_test_client(tmp_path)
    res = client.post("/api/auth/register", json={"login": "  Alice ", "password": "secret-1"})
    assert res.status_code == 200, res.text
    assert res.json() == {"ok": True}

    res_login = client.post("/api/auth", json={"login": "alice", "password": "secret-1"})
    assert res_login.status_code == 200, res_login.text

    pages = client.get("/api/account/allowed-pages")
    assert pages.status_code == 200
    assert pages.json() == {"allowedPages": ["/"]}

    assert client.get("/", headers=HTML, follow_redirects=False).status_code == 200
    res_admin = client.get("/admin", headers=HTML, follow_redirects=False)
    assert redirect_query(res_admin)["forbidden"] == ["1"]


def test_account_login_wrong_password(tmp_path: Path):
    client = create_test_client(tmp_path)
    client.post("/api/auth/register", json={"login": "bob", "password": "secret-1"})
    res = client.post("/api/auth", json={"login": "bob", "password": "admin-pass"})
    assert res.status_code == 401


@pytest.mark.parametrize(
    "login,password",
    [("a", "secret-1"), ("x" * 65, "secret-1"), ("carol", "12345"), ("", "")],
)
def test_register_validation(tmp_path: Path, login, password):
    client = create_test_client(tmp_path)
    res = client.post("/api/auth/register", json={"login": login, "password": password})
    assert res.status_code == 400


def test_register_duplicate_login(tmp_path: Path):
    client = create_test_client(tmp_path)
    assert client.post("/api/auth/register", json={"login": "dave", "password": "secret-1"}).status_code == 200
    res = client.post("/api/auth/register", json={"login": "DAVE", "password": "secret-2"})
    assert res.status_code == 409


def test_allowed_pages_404_for_non_account_sessions(tmp_path: Path):
    client = create_test_client(tmp_path)
    assert client.get("/api/account/allowed-pages").status_code == 404
    client.post("/api/auth", json={"password": "admin-pass"})
    assert client.get("/api/account/allowed-pages").status_code == 404


def test_logout_clears_cookie(tmp_path: Path):
    client = create_test_client(tmp_path)
    client.post("/api/auth", json={"password": "admin-pass"})
    res = client.get("/api/auth/logout", follow_redirects=False)
    assert res.status_code == 302
    assert res.headers["location"] == "/login"
    assert 'map-auth=""' in res.headers["set-cookie"] or "max-age=0" in res.headers["set-cookie"].lower()


def test_bearer_header_accepted(tmp_path: Path):
    client = create_test_client(tmp_path)
    token = client.app.state.auth_service.login("admin-pass")
    fresh = TestClient(client.app)
    res = fresh.get("/admin", headers={**HTML, "Authorization": f"Bearer {token}"}, follow_redirects=False)
    assert res.status_code == 200
