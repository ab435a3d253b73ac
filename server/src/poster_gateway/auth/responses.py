"""Single-response builder for the login and callback endpoints"""

from pathlib import Path
from typing import Optional

from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from poster_gateway.auth.session_store import SessionStore

template_dir = Path(__file__).parent.parent / "templates"
templates = Jinja2Templates(directory=str(template_dir))

GENERIC_FAILURE_MESSAGE = "登入失敗，請重新登入。"


def failure_page(
    request: Request,
    status_code: int = 400,
    message: str = GENERIC_FAILURE_MESSAGE,
) -> Response:
    """Generic failure page: no cookies, no Location header."""
    return templates.TemplateResponse(
        request,
        "login_failed.html",
        {"message": message},
        status_code=status_code,
    )


class AuthResponseBuilder:
    """
    Accumulate cookie writes and a redirect target, then emit one response.

    Every cookie the session store buffered during the request ends up on the
    same response as the ``Location`` header.
    """

    def __init__(self, store: SessionStore):
        self.store = store
        self._location: Optional[str] = None
        self._status_code = 302

    def redirect(self, location: str, status_code: int = 302) -> "AuthResponseBuilder":
        self._location = location
        self._status_code = status_code
        return self

    def build(self) -> Response:
        if self._location is None:
            raise RuntimeError("AuthResponseBuilder.build() called without a redirect target")
        response = RedirectResponse(url=self._location, status_code=self._status_code)
        return self.store.apply(response)
