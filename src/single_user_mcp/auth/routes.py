"""
Login endpoints for the single-user authorization flow using Starlette.

Implements:
- GET /login: API key form for a parked authorization request (Jinja2 template)
- POST /login: checks the key and redirects back to the client with a code
"""

import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from single_user_mcp.auth.provider import PendingAuthorization, SingleUserOAuthProvider
from single_user_mcp.core.exceptions import AuthorizationRequestError

logger = logging.getLogger(__name__)

SERVER_NAME = "single-user-mcp"
LOGIN_PATH = "/login"

# Initialize Jinja2 templates
template_dir = Path(__file__).parent / "templates"
jinja_env = Environment(
    loader=FileSystemLoader(str(template_dir)),
    autoescape=select_autoescape(["html"]),
)


# Helper function to render Jinja2 templates
def render_template(template_name: str, context: dict, status_code: int = 200) -> HTMLResponse:
    """Render Jinja2 template."""
    template = jinja_env.get_template(template_name)
    html_content = template.render(**context)
    return HTMLResponse(content=html_content, status_code=status_code)


def render_login_page(
    provider: SingleUserOAuthProvider,
    request_id: str,
    pending: PendingAuthorization | None,
    error: str | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    scopes = (pending.params.scopes or []) if pending else []
    return render_template(
        "login.html",
        {
            "server_name": SERVER_NAME,
            "action": LOGIN_PATH,
            "request_id": request_id,
            "client_name": pending.client_name if pending else None,
            "scopes": scopes,
            "key_file": str(provider.gate.key_file),
            "key_preview": provider.gate.masked_key(),
            "error": error,
        },
        status_code=status_code,
    )


def invalid_request_response() -> JSONResponse:
    return JSONResponse(
        {
            "error": "invalid_request",
            "error_description": "Unknown or expired authorization request",
        },
        status_code=400,
    )


async def login_get(request: Request, provider: SingleUserOAuthProvider) -> Response:
    """Login endpoint (GET) - shows the API key form."""
    request_id = request.query_params.get("request_id", "")
    pending = provider.get_pending_authorization(request_id)
    if pending is None:
        return invalid_request_response()
    return render_login_page(provider, request_id, pending)


async def login_post(request: Request, provider: SingleUserOAuthProvider) -> Response:
    """Login endpoint (POST) - processes the API key form."""
    form = await request.form()
    request_id = str(form.get("request_id") or "")
    password = str(form.get("password") or "")

    try:
        redirect_url = await provider.complete_authorization(request_id, password)
    except AuthorizationRequestError:
        return invalid_request_response()

    if redirect_url is None:
        return render_login_page(
            provider,
            request_id,
            provider.get_pending_authorization(request_id),
            error="Invalid API key. Please try again.",
            status_code=401,
        )

    return RedirectResponse(url=redirect_url, status_code=302)
