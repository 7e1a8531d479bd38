"""
FastAPI Application Module

REST API for two-party chat: conversations, messages and the user directory,
plus the realtime relay endpoint for presence and live delivery.

Key Features:
- One conversation per pair of users, found or created on demand
- Membership-checked reads and writes of message history
- Structured logging and Prometheus metrics
- CORS and OpenTelemetry support

Caller identity is established upstream and passed in a request header;
this service trusts it once the id resolves to a registered user.
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import generate_latest
from structlog import get_logger

from ..config import Settings, get_settings
from ..domain.errors import ChatError, Internal, Unauthenticated
from ..domain.models import (
    ConversationCreated,
    ConversationSummary,
    DirectoryEntry,
    MessageView,
    User,
    UserProfile,
    WireModel,
)
from ..logging_config import configure_logging
from ..metrics import CUSTOM_REGISTRY
from ..repositories.memory import (
    InMemoryConversationRepository,
    InMemoryMessageRepository,
    InMemoryUserRepository,
)
from ..services.chat import ChatService
from ..services.presence import PresenceRegistry
from ..services.relay import RealtimeRelay
from .realtime import router as realtime_router

logger = get_logger()

router = APIRouter()


class ConversationCreate(WireModel):
    """Body of a create-conversation request"""
    sender_id: Optional[str] = None
    receiver_id: Optional[str] = None


class MessageCreate(WireModel):
    """Body of a send-message request; conversationId may be "new" """
    conversation_id: Optional[str] = None
    receiver_id: Optional[str] = None
    message: Optional[str] = None


class UserCreate(WireModel):
    email: str
    full_name: str


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Logs app startup/shutdown"""
    logger.info("application_startup_complete", env=app.state.settings.env)

    yield

    logger.info(
        "application_shutdown_complete",
        online_users=len(app.state.presence),
    )


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_chat_service(request: Request) -> ChatService:
    """Returns the conversation/message service"""
    return request.app.state.chat_service


async def get_current_user(
    request: Request,
    chat: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_app_settings),
) -> User:
    """Resolves the caller identity attached by the upstream auth layer"""
    user_id = request.headers.get(settings.identity_header)
    if not user_id:
        raise http_error(
            Unauthenticated("Not authorized - No identity provided"), settings, "unauthenticated_request"
        )
    user = await chat.users.get(user_id)
    if user is None:
        raise http_error(Unauthenticated("User not found"), settings, "unknown_caller", user_id=user_id)
    return user


def http_error(error: ChatError, settings: Settings, event: str, **context) -> HTTPException:
    """Translate a ChatError into an HTTP response, hiding internals in production"""
    if isinstance(error, Internal):
        logger.error(event, error=error.message, **context)
        detail = {"message": error.message}
        if settings.expose_errors and error.__cause__ is not None:
            detail["error"] = str(error.__cause__)
        return HTTPException(status_code=error.status_code, detail=detail)

    logger.warning(event, status_code=error.status_code, error=error.message, **context)
    return HTTPException(status_code=error.status_code, detail=error.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("request_validation_failed", path=request.url.path)
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


async def logging_middleware(request: Request, call_next):
    """Tracks requests"""
    logger.info("request_started", method=request.method, path=request.url.path)
    try:
        response = await call_next(request)
        logger.info("request_finished", path=request.url.path, status_code=response.status_code)
        return response
    except Exception as e:
        logger.error("request_failed", path=request.url.path, error=str(e))
        raise


@router.get("/")
async def health():
    return {"message": "Chat API is running"}


@router.post("/users", response_model=UserProfile, status_code=201)
async def register_user(
    body: UserCreate,
    chat: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_app_settings),
) -> UserProfile:
    """Adds a user to the directory; credentials are managed elsewhere"""
    try:
        user = await chat.users.create(email=body.email, full_name=body.full_name)
        return user.profile()
    except ChatError as e:
        raise http_error(e, settings, "register_user_error")


@router.get("/users/me", response_model=UserProfile)
async def get_me(caller: User = Depends(get_current_user)) -> UserProfile:
    return caller.profile()


@router.post("/conversations", response_model=ConversationCreated)
async def create_conversation(
    body: ConversationCreate,
    response: Response,
    caller: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_app_settings),
) -> ConversationCreated:
    """Returns the pair's conversation, creating it if needed (201 when new)"""
    try:
        conversation, is_new = await chat.create_conversation(
            body.sender_id, body.receiver_id, caller_id=caller.id
        )
        response.status_code = 201 if is_new else 200
        return ConversationCreated(conversation=conversation, is_new=is_new)
    except ChatError as e:
        raise http_error(e, settings, "create_conversation_error", caller_id=caller.id)


@router.get("/conversations/{user_id}", response_model=List[ConversationSummary])
async def list_conversations(
    user_id: str,
    caller: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_app_settings),
) -> List[ConversationSummary]:
    """Lists a user's conversations with the other member's profile"""
    try:
        return await chat.list_conversations_for_user(user_id, caller_id=caller.id)
    except ChatError as e:
        raise http_error(e, settings, "list_conversations_error", user_id=user_id)


@router.post("/messages", response_model=MessageView, status_code=201)
async def send_message(
    body: MessageCreate,
    caller: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_app_settings),
) -> MessageView:
    """
    Persists a message from the caller.
    With conversationId "new" the conversation with receiverId is found or created.
    """
    try:
        return await chat.send_message(
            sender_id=caller.id,
            conversation_id=body.conversation_id,
            text=body.message,
            receiver_id=body.receiver_id,
        )
    except ChatError as e:
        raise http_error(
            e, settings, "send_message_error",
            caller_id=caller.id, conversation_id=body.conversation_id,
        )


# Registered before /messages/{conversation_id} so "users" is not taken as an id
@router.get("/messages/users", response_model=List[DirectoryEntry])
async def list_users(
    caller: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_app_settings),
) -> List[DirectoryEntry]:
    """Everyone the caller could start a conversation with"""
    try:
        return await chat.list_other_users(caller.id)
    except ChatError as e:
        raise http_error(e, settings, "list_users_error")


@router.get("/messages/{conversation_id}", response_model=List[MessageView])
async def list_messages(
    conversation_id: str,
    caller: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_app_settings),
) -> List[MessageView]:
    """Gets a conversation's message history, oldest first"""
    try:
        return await chat.list_messages(conversation_id, caller.id)
    except ChatError as e:
        raise http_error(e, settings, "list_messages_error", conversation_id=conversation_id)


@router.get("/metrics")
async def metrics():
    """Provides Prometheus metrics for system monitoring"""
    return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Builds an app with its own stores, presence registry and relay"""
    settings = settings or get_settings()
    configure_logging(settings.log_level, json_output=settings.env == "production")

    users = InMemoryUserRepository()
    conversations = InMemoryConversationRepository(users)
    messages = InMemoryMessageRepository()
    presence = PresenceRegistry()

    app = FastAPI(
        title=settings.app_title,
        description="Two-party chat with realtime presence and delivery",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.chat_service = ChatService(users, conversations, messages)
    app.state.presence = presence
    app.state.relay = RealtimeRelay(presence)

    # Enable cross-origin requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(logging_middleware)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Set up request tracing
    FastAPIInstrumentor.instrument_app(app)

    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(realtime_router, prefix=settings.api_prefix)
    return app


app = create_app()
