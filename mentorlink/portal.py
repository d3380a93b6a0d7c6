"""Browser-facing routes and the chat WebSocket for MentorLink."""
from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional

import anyio
from fastapi import FastAPI, Form, Request, WebSocket, status
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware
from starlette.websockets import WebSocketDisconnect

from .chat import ChatRelay, room_id, send_json_safely
from .config import Settings
from .database import Database
from .errors import AuthorizationError, MentorLinkError, UserNotFoundError, ValidationError
from .matching import MatchingEngine
from .models import Feedback, Role, User, normalize_email
from .notifications import Mailer, NotificationOutbox
from .security import PASSWORD_MIN_LENGTH, is_room_member

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

logger = logging.getLogger("mentorlink.portal")


def _json_for_script(payload: object) -> str:
    return json.dumps(payload).replace("</", "<\\/")


def create_app(
    *,
    database: Database,
    settings: Settings,
    outbox: Optional[NotificationOutbox] = None,
    mailer: Optional[Mailer] = None,
    relay: Optional[ChatRelay] = None,
) -> FastAPI:
    """Create the MentorLink web application.

    When ``mailer`` is given the application lifespan drains ``outbox`` in a
    background task; otherwise queued notifications simply wait in the outbox.
    """

    if not settings.session_secret:
        raise RuntimeError("MENTORLINK_SESSION_SECRET must be configured to serve the portal")

    if outbox is None:
        outbox = NotificationOutbox()
    if relay is None:
        relay = ChatRelay(database)
    engine = MatchingEngine(database, outbox, public_url=settings.public_url)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if mailer is None:
            yield
            return
        async with anyio.create_task_group() as task_group:
            task_group.start_soon(outbox.run, mailer)
            logger.info("Notification worker started")
            yield
            task_group.cancel_scope.cancel()

    app = FastAPI(
        title="MentorLink",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.database = database
    app.state.settings = settings
    app.state.outbox = outbox
    app.state.relay = relay
    app.state.matching = engine

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie="mentorlink_session",
        https_only=settings.session_secure,
        same_site="lax",
        max_age=60 * 60 * 24 * 7,
    )

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    templates.env.globals["allowed_domains"] = settings.allowed_email_domains

    @app.exception_handler(MentorLinkError)
    async def handle_domain_error(request: Request, exc: MentorLinkError):
        if exc.status_code >= 500:
            return PlainTextResponse("Something went wrong. Please try again.", status_code=exc.status_code)
        return PlainTextResponse(str(exc), status_code=exc.status_code)

    def _flash(request: Request, message: str, *, category: str = "info") -> None:
        messages = request.session.get("flash_messages")
        if not isinstance(messages, list):
            messages = []
        messages.append({"message": message, "category": category})
        request.session["flash_messages"] = messages

    def _consume_flash(request: Request) -> List[Dict[str, str]]:
        messages = request.session.pop("flash_messages", [])
        if isinstance(messages, list):
            return messages
        return []

    def _get_current_user_from_session(session) -> Optional[User]:
        if not isinstance(session, dict):
            return None
        email = session.get("user_email")
        if not email:
            return None
        return database.get_user(str(email))

    def _get_current_user(request: Request) -> Optional[User]:
        user = _get_current_user_from_session(request.session)
        if user is None:
            request.session.pop("user_email", None)
        return user

    def _redirect(request: Request, name: str) -> RedirectResponse:
        return RedirectResponse(request.url_for(name), status_code=status.HTTP_303_SEE_OTHER)

    def _require_self(user: User, email: str) -> None:
        if normalize_email(email) != user.email:
            raise AuthorizationError("You can only act on your own account")

    def _require_pair_member(user: User, junior_email: str, senior_email: str) -> None:
        if not is_room_member(user, database.get_user(junior_email), database.get_user(senior_email)):
            raise AuthorizationError("You are not a participant of this mentoring pair")

    @app.get("/", response_class=HTMLResponse)
    async def root(request: Request):
        if _get_current_user(request) is None:
            return _redirect(request, "show_login")
        return _redirect(request, "dashboard")

    @app.get("/health", response_class=PlainTextResponse)
    async def health():
        return "MentorLink is running"

    @app.get("/register", response_class=HTMLResponse, name="show_register")
    async def register_form(request: Request):
        return templates.TemplateResponse(
            request,
            "register.html",
            {"password_min_length": PASSWORD_MIN_LENGTH},
        )

    @app.post("/register", name="process_register")
    async def process_register(
        request: Request,
        name: str = Form(...),
        email: str = Form(...),
        password: str = Form(...),
        role: str = Form(...),
        interests: str = Form(""),
    ):
        try:
            parsed_role = Role(role.strip().lower())
        except ValueError:
            raise ValidationError("Role must be either junior or senior") from None

        normalized_email = normalize_email(email)
        if "@" not in normalized_email or not settings.is_institutional_email(normalized_email):
            domains = ", ".join(settings.allowed_email_domains)
            raise ValidationError(f"Please register with your institutional email address ({domains}).")
        if len(password) < PASSWORD_MIN_LENGTH:
            raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.")

        database.create_user(name, normalized_email, password, parsed_role, interests.split(","))
        request.session["login_notice"] = "Registration complete. Please log in."
        return _redirect(request, "show_login")

    @app.get("/login", response_class=HTMLResponse, name="show_login")
    async def login_form(request: Request):
        if _get_current_user(request) is not None:
            return _redirect(request, "dashboard")
        error = request.session.pop("login_error", None)
        notice = request.session.pop("login_notice", None)
        return templates.TemplateResponse(
            request,
            "login.html",
            {"error": error, "notice": notice},
        )

    @app.post("/login", name="process_login")
    async def process_login(request: Request, email: str = Form(...), password: str = Form(...)):
        user = database.authenticate_user(email, password)
        if user is None:
            request.session["login_error"] = "Invalid email or password."
            return _redirect(request, "show_login")

        request.session.clear()
        request.session["user_email"] = user.email
        return _redirect(request, "dashboard")

    @app.get("/logout", name="logout")
    async def logout(request: Request):
        request.session.clear()
        return _redirect(request, "show_login")

    @app.get("/dashboard", response_class=HTMLResponse, name="dashboard")
    async def dashboard(request: Request, email: Optional[str] = None):
        user = _get_current_user(request)
        if user is None:
            return _redirect(request, "show_login")
        if email:
            _require_self(user, email)

        users = database.list_users()
        return templates.TemplateResponse(
            request,
            "dashboard.html",
            {
                "user": user,
                "users": users,
                "matched_users": engine.matched_users(user),
                "messages": _consume_flash(request),
                "user_json": _json_for_script(user.to_view()),
            },
        )

    @app.post("/select-interest", name="select_interest")
    async def select_interest(request: Request, email: str = Form(...), interest: str = Form(...)):
        user = _get_current_user(request)
        if user is None:
            return _redirect(request, "show_login")
        _require_self(user, email)

        result = engine.select_interest(user.email, interest)
        if result.senior is not None:
            _flash(
                request,
                f"You have been matched with {result.senior.name} ({result.senior.email}).",
                category="success",
            )
        else:
            _flash(
                request,
                f"No senior currently covers '{interest.strip()}'. Try again later or pick another interest.",
                category="info",
            )
        return _redirect(request, "dashboard")

    @app.post("/edit-interests", name="edit_interests")
    async def edit_interests(request: Request, email: str = Form(...), interests: str = Form("")):
        user = _get_current_user(request)
        if user is None:
            return _redirect(request, "show_login")
        _require_self(user, email)

        engine.edit_interests(user.email, interests)
        _flash(request, "Interests updated.", category="success")
        return _redirect(request, "dashboard")

    @app.get("/chat", response_class=HTMLResponse, name="chat")
    async def chat_page(request: Request, junior: Optional[str] = None, senior: Optional[str] = None):
        user = _get_current_user(request)
        if user is None:
            return _redirect(request, "show_login")
        if not junior or not senior:
            return PlainTextResponse("Missing parameters.", status_code=status.HTTP_400_BAD_REQUEST)
        _require_pair_member(user, junior, senior)

        return templates.TemplateResponse(
            request,
            "chat.html",
            {
                "user": user,
                "junior_email": normalize_email(junior),
                "senior_email": normalize_email(senior),
                "room": room_id(junior, senior),
            },
        )

    @app.get("/feedback", response_class=HTMLResponse, name="feedback")
    async def feedback_form(request: Request, senior: Optional[str] = None, junior: Optional[str] = None):
        user = _get_current_user(request)
        if user is None:
            return _redirect(request, "show_login")
        if not junior or not senior:
            return PlainTextResponse("Missing parameters.", status_code=status.HTTP_400_BAD_REQUEST)
        _require_pair_member(user, junior, senior)

        return templates.TemplateResponse(
            request,
            "feedback.html",
            {
                "user": user,
                "junior_email": normalize_email(junior),
                "senior_email": normalize_email(senior),
            },
        )

    @app.post("/submit-feedback", name="submit_feedback")
    async def submit_feedback(
        request: Request,
        senior_email: str = Form(..., alias="seniorEmail"),
        junior_email: str = Form(..., alias="juniorEmail"),
        rating: str = Form(...),
        comments: str = Form(""),
    ):
        user = _get_current_user(request)
        if user is None:
            return _redirect(request, "show_login")
        for email in (junior_email, senior_email):
            if database.get_user(email) is None:
                raise UserNotFoundError(f"No user registered with email {normalize_email(email)}")
        _require_pair_member(user, junior_email, senior_email)
        try:
            score = int(rating)
        except ValueError:
            raise ValidationError("Rating must be a whole number between 1 and 5") from None
        if not 1 <= score <= 5:
            raise ValidationError("Rating must be a whole number between 1 and 5")

        database.add_feedback(
            Feedback(
                junior_email=normalize_email(junior_email),
                senior_email=normalize_email(senior_email),
                rating=score,
                comments=comments.strip(),
                submitted_by=user.email,
            )
        )
        return PlainTextResponse("Feedback saved successfully")

    @app.websocket("/ws/chat", name="chat_socket")
    async def chat_socket(websocket: WebSocket):
        user = _get_current_user_from_session(websocket.session)
        if user is None:
            await websocket.close(code=4401)
            return

        await websocket.accept()
        logger.info("Chat connection opened for %s", user.email)
        try:
            while True:
                text = await websocket.receive_text()
                try:
                    payload = json.loads(text)
                except json.JSONDecodeError:
                    payload = None
                if not isinstance(payload, dict):
                    await send_json_safely(websocket, {"event": "error", "message": "Invalid payload"})
                    continue

                event = payload.get("event")
                try:
                    if event == "joinRoom":
                        await relay.join_room(
                            websocket,
                            user.email,
                            str(payload.get("junior") or ""),
                            str(payload.get("senior") or ""),
                        )
                    elif event == "chatMessage":
                        await relay.send_message(websocket, user.email, str(payload.get("text") or ""))
                    else:
                        raise ValidationError(f"Unknown event: {event}")
                except MentorLinkError as exc:
                    await send_json_safely(websocket, {"event": "error", "message": str(exc)})
        except WebSocketDisconnect:
            pass
        finally:
            relay.leave(websocket)
            logger.info("Chat connection closed for %s", user.email)

    return app


__all__ = ["create_app"]
