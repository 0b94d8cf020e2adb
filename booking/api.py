"""FastAPI application exposing the event booking endpoints."""
from __future__ import annotations

import functools
import logging
from datetime import datetime
from typing import Any, Callable, List, TypeVar

import anyio
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .accounts import AccountService
from .config import Settings, load_settings
from .database import Database
from .errors import (
    DuplicateEmailError,
    DuplicateRegistrationError,
    EventNotFoundError,
    InvalidCredentialsError,
    NotEventOwnerError,
    PasswordHashingError,
    StoreError,
)
from .events import EventService
from .models import Event, EventDraft, Identity, Registration, User
from .passwords import PasswordHasher
from .security import TokenAuth
from .tokens import TokenService

logger = logging.getLogger("booking.api")

T = TypeVar("T")


class CredentialsRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=320)
    password: str = Field(..., min_length=1, max_length=256)


class UserResponse(BaseModel):
    id: int
    email: str
    created_at: datetime


class SignupResponse(BaseModel):
    message: str
    user: UserResponse


class LoginResponse(BaseModel):
    message: str
    token: str
    token_type: str = "bearer"
    user: UserResponse


class UserListResponse(BaseModel):
    users: List[UserResponse]


class EventRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=4000)
    date: datetime
    location: str = Field(..., min_length=1, max_length=200)

    def to_draft(self) -> EventDraft:
        return EventDraft(
            name=self.name,
            description=self.description,
            starts_at=self.date,
            location=self.location,
        )


class EventResponse(BaseModel):
    id: int
    name: str
    description: str
    date: datetime
    location: str
    user_id: int


class EventEnvelope(BaseModel):
    message: str
    event: EventResponse


class EventListResponse(BaseModel):
    events: List[EventResponse]


class RegistrationResponse(BaseModel):
    id: int
    user_id: int
    event_id: int


class RegistrationEnvelope(BaseModel):
    message: str
    registration: RegistrationResponse


class RegistrationListResponse(BaseModel):
    registrations: List[RegistrationResponse]


class CancelRegistrationResponse(BaseModel):
    message: str
    removed: bool


def user_to_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, email=user.email, created_at=user.created_at)


def event_to_response(event: Event) -> EventResponse:
    return EventResponse(
        id=event.id,
        name=event.name,
        description=event.description,
        date=event.starts_at,
        location=event.location,
        user_id=event.user_id,
    )


def registration_to_response(registration: Registration) -> RegistrationResponse:
    return RegistrationResponse(
        id=registration.id,
        user_id=registration.user_id,
        event_id=registration.event_id,
    )


async def _run(func: Callable[..., T], *args: Any) -> T:
    """Run blocking store or hashing work on a worker thread."""
    return await anyio.to_thread.run_sync(functools.partial(func, *args))


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")


def register_api_routes(
    app: FastAPI,
    accounts: AccountService,
    events: EventService,
    *,
    current_identity: Callable[..., Identity],
) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    @app.get("/healthz")
    async def healthcheck() -> dict:
        return {"status": "ok"}

    @app.post("/signup", status_code=status.HTTP_201_CREATED, response_model=SignupResponse)
    async def signup(request: CredentialsRequest) -> SignupResponse:
        try:
            user = await _run(accounts.signup, request.email, request.password)
        except DuplicateEmailError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        except PasswordHashingError as exc:
            logger.exception("Signup aborted because the password could not be hashed")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Could not register the user. Please try again later.",
            ) from exc
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        return SignupResponse(message="User created successfully", user=user_to_response(user))

    @app.post("/login", response_model=LoginResponse)
    async def login(request: CredentialsRequest) -> LoginResponse:
        try:
            user, token = await _run(accounts.login, request.email, request.password)
        except InvalidCredentialsError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
        return LoginResponse(
            message="User logged in successfully",
            token=token,
            user=user_to_response(user),
        )

    @app.get("/users", response_model=UserListResponse)
    async def list_users() -> UserListResponse:
        users = await _run(accounts.list_users)
        return UserListResponse(users=[user_to_response(user) for user in users])

    @app.get("/events", response_model=EventListResponse)
    async def list_events() -> EventListResponse:
        items = await _run(events.list_events)
        return EventListResponse(events=[event_to_response(event) for event in items])

    @app.get("/events/{event_id}", response_model=EventResponse)
    async def get_event(event_id: int) -> EventResponse:
        try:
            event = await _run(events.get_event, event_id)
        except EventNotFoundError as exc:
            raise _not_found() from exc
        return event_to_response(event)

    @app.post("/events", status_code=status.HTTP_201_CREATED, response_model=EventEnvelope)
    async def create_event(
        request: EventRequest,
        identity: Identity = Depends(current_identity),
    ) -> EventEnvelope:
        event = await _run(events.create_event, identity, request.to_draft())
        return EventEnvelope(message="Event created successfully", event=event_to_response(event))

    @app.put("/events/{event_id}", response_model=EventEnvelope)
    async def update_event(
        event_id: int,
        request: EventRequest,
        identity: Identity = Depends(current_identity),
    ) -> EventEnvelope:
        try:
            event = await _run(events.update_event, identity, event_id, request.to_draft())
        except EventNotFoundError as exc:
            raise _not_found() from exc
        except NotEventOwnerError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
        return EventEnvelope(message="Event updated successfully", event=event_to_response(event))

    @app.delete("/events/{event_id}", response_model=EventEnvelope)
    async def delete_event(
        event_id: int,
        identity: Identity = Depends(current_identity),
    ) -> EventEnvelope:
        try:
            event = await _run(events.delete_event, identity, event_id)
        except EventNotFoundError as exc:
            raise _not_found() from exc
        except NotEventOwnerError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
        return EventEnvelope(message="Event deleted successfully", event=event_to_response(event))

    @app.post(
        "/events/{event_id}/register",
        status_code=status.HTTP_201_CREATED,
        response_model=RegistrationEnvelope,
    )
    async def register_for_event(
        event_id: int,
        identity: Identity = Depends(current_identity),
    ) -> RegistrationEnvelope:
        try:
            registration = await _run(events.register, identity, event_id)
        except EventNotFoundError as exc:
            raise _not_found() from exc
        except DuplicateRegistrationError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return RegistrationEnvelope(
            message="Successfully registered for the event",
            registration=registration_to_response(registration),
        )

    @app.delete("/events/{event_id}/register", response_model=CancelRegistrationResponse)
    async def cancel_registration(
        event_id: int,
        identity: Identity = Depends(current_identity),
    ) -> CancelRegistrationResponse:
        removed = await _run(events.cancel_registration, identity, event_id)
        return CancelRegistrationResponse(
            message="Registration cancelled" if removed else "No registration to cancel",
            removed=removed,
        )

    @app.get("/events/{event_id}/registrations", response_model=RegistrationListResponse)
    async def list_event_registrations(event_id: int) -> RegistrationListResponse:
        try:
            items = await _run(events.list_attendees, event_id)
        except EventNotFoundError as exc:
            raise _not_found() from exc
        return RegistrationListResponse(
            registrations=[registration_to_response(item) for item in items]
        )

    @app.get("/registrations", response_model=RegistrationListResponse)
    async def list_registrations() -> RegistrationListResponse:
        items = await _run(events.list_registrations)
        return RegistrationListResponse(
            registrations=[registration_to_response(item) for item in items]
        )


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        logger.error(
            "Store failure while handling %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    tokens: TokenService | None = None,
    hasher: PasswordHasher | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the booking service.

    Schema creation happens here; any failure propagates so that startup
    aborts instead of serving requests against a broken store.
    """

    settings = settings or load_settings()
    db = database or Database(
        settings.database_path,
        max_connections=settings.pool_max_connections,
        max_idle=settings.pool_max_idle,
        timeout=settings.pool_timeout,
    )
    db.initialize(allow_duplicate_registrations=settings.allow_duplicate_registrations)

    token_service = tokens or TokenService.from_settings(settings)
    password_hasher = hasher or PasswordHasher(settings.bcrypt_rounds)

    accounts = AccountService(db, password_hasher, token_service)
    event_service = EventService(db)

    app = FastAPI(
        title="Event Booking API",
        version="0.1.0",
        description="Users, events and registrations behind signed bearer tokens.",
    )
    _register_error_handlers(app)
    register_api_routes(
        app,
        accounts,
        event_service,
        current_identity=TokenAuth(token_service),
    )
    return app


__all__ = ["create_app", "register_api_routes"]
