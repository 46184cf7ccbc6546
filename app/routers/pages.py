"""
Server-rendered pages.

Deliberately thin: the login flow posts plain forms that reuse the same
OTP, rate-limit and session services as the JSON API.
"""

from pathlib import Path

from fastapi import APIRouter, Form, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from app import db
from app.dependencies import Limiter, OptionalUser, Otp, Sessions
from app.errors import NotFound, ValidationError
from app.rate_limit import SEND_OTP, VERIFY_OTP, client_key
from app.services.session import set_session_cookie

_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(_TEMPLATES_DIR))

router = APIRouter(tags=["pages"], include_in_schema=False)


def _safe_next(target: str | None) -> str:
    """Only same-site absolute paths are valid post-login targets."""
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return "/"


def _login_page(request: Request, *, step: str, email: str = "", next_url: str = "/",
                flash: dict | None = None):
    return templates.TemplateResponse(
        request,
        "pages/login.html",
        {"step": step, "email": email, "next_url": next_url, "flash": flash},
    )


# ── Pages ──────────────────────────────────────────────────────────────────


@router.get("/", response_class=HTMLResponse)
async def home(request: Request, user: OptionalUser):
    return templates.TemplateResponse(request, "pages/home.html", {"user": user})


@router.get("/schools", response_class=HTMLResponse)
async def schools_page(request: Request, user: OptionalUser):
    schools = await db.list_schools()
    return templates.TemplateResponse(
        request, "pages/schools.html", {"user": user, "schools": schools}
    )


@router.get("/schools/{school_id}", response_class=HTMLResponse)
async def school_detail_page(request: Request, school_id: int, user: OptionalUser):
    school = await db.get_school(school_id)
    if school is None:
        raise NotFound("School not found")
    return templates.TemplateResponse(
        request, "pages/school_detail.html", {"user": user, "school": school}
    )


@router.get("/addSchool", response_class=HTMLResponse)
async def add_school_page(request: Request, user: OptionalUser):
    # The request gate has already redirected anonymous visitors.
    return templates.TemplateResponse(request, "pages/add_school.html", {"user": user})


# ── Login ──────────────────────────────────────────────────────────────────


@router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request, next_url: str | None = Query(None, alias="from")):
    return _login_page(request, step="email", next_url=_safe_next(next_url))


@router.post("/login", response_class=HTMLResponse)
async def login_submit_email(
    request: Request,
    otp: Otp,
    limiter: Limiter,
    email: str = Form(""),
    next_url: str = Form("/"),
):
    next_url = _safe_next(next_url)
    decision = await limiter.admit(client_key(request), SEND_OTP)
    if not decision.allowed:
        return _login_page(
            request, step="email", email=email, next_url=next_url,
            flash={"type": "error",
                   "message": f"Too many requests. Try again in {decision.retry_after_seconds}s."},
        )

    try:
        result = await otp.issue(email)
    except ValidationError as exc:
        return _login_page(
            request, step="email", email=email, next_url=next_url,
            flash={"type": "error", "message": exc.message},
        )
    if not result.success:
        return _login_page(
            request, step="email", email=email, next_url=next_url,
            flash={"type": "error", "message": "Could not send the code. Try again."},
        )

    return _login_page(
        request, step="otp", email=email, next_url=next_url,
        flash={"type": "success", "message": f"Code sent to {email}"},
    )


@router.post("/login/verify")
async def login_verify_otp(
    request: Request,
    otp: Otp,
    limiter: Limiter,
    sessions: Sessions,
    email: str = Form(""),
    otp_code: str = Form(""),
    next_url: str = Form("/"),
):
    next_url = _safe_next(next_url)
    decision = await limiter.admit(client_key(request), VERIFY_OTP)
    result = await otp.verify(email, otp_code) if decision.allowed else None
    if result is None or not result.success:
        message = (
            "Invalid or expired code. Try again."
            if decision.allowed
            else f"Too many attempts. Try again in {decision.retry_after_seconds}s."
        )
        return _login_page(
            request, step="otp", email=email, next_url=next_url,
            flash={"type": "error", "message": message},
        )

    session = await sessions.create_session(email)
    redirect = RedirectResponse(next_url, status_code=303)
    set_session_cookie(redirect, session.token)
    return redirect
