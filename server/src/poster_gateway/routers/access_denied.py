"""Access-denied page shown after an allow-list rejection"""

from fastapi import APIRouter, Request

from poster_gateway.auth.callback import DENIED_REASON_KEY
from poster_gateway.auth.responses import templates

router = APIRouter(include_in_schema=False)


@router.get("/access-denied")
async def access_denied(request: Request):
    """Render the stored, non-secret denial reason with a link home"""
    reason = request.session.pop(DENIED_REASON_KEY, "")
    tenant = getattr(request.state, "tenant", None)
    home_url = f"{tenant.origin}/" if tenant is not None else "/"
    return templates.TemplateResponse(
        request,
        "access_denied.html",
        {"reason": reason, "home_url": home_url},
        status_code=403,
    )
