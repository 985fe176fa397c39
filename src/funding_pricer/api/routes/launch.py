"""
App launch from the Cafe24 admin.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from funding_pricer.api.dependencies import get_launch_gate, get_sessions
from funding_pricer.auth.session import SessionManager
from funding_pricer.services.launch import LaunchGate
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/session-from-cafe24")
def session_from_cafe24(
    request: Request,
    gate: LaunchGate = Depends(get_launch_gate),
    sessions: SessionManager = Depends(get_sessions),
):
    """
    Verify a signed launch request and start a session.

    Cafe24 appends ``mall_id``, ``user_id``, ``timestamp`` and ``hmac`` (among
    others) to the app URL. Known tenants land on the dashboard with a session
    cookie; first-run tenants are sent to the OAuth flow.
    """
    decision = gate.admit(str(request.url), request.query_params)

    response = RedirectResponse(decision.redirect_url)
    if decision.admitted:
        sessions.set_cookie(response, decision.session_token)
    return response
