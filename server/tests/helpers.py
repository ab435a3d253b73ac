"""Small HTTP helpers shared by the gateway tests"""

from fastapi.testclient import TestClient


def set_cookie_headers(response, name: str) -> list[str]:
    """Set-Cookie headers of response that write cookie name."""
    return [
        header
        for header in response.headers.get_list("set-cookie")
        if header.startswith(f"{name}=")
    ]


def start_login(client: TestClient, path: str, redirect: str | None = None):
    """Hit the login route so the client holds a PKCE verifier cookie."""
    params = {"redirect": redirect} if redirect is not None else None
    response = client.get(path, params=params, follow_redirects=False)
    assert response.status_code == 302, response.text
    return response
