# /app/main.py
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# --- Core / Config ---
from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.db.session import SessionLocal, init_db
from app.services.conversation_gateway import ConversationGateway

# --- API Routers ---
from app.api.routes import auth as auth_router
from app.api.routes import admin_auth as admin_auth_router
from app.api.routes import teacher_auth as teacher_auth_router
from app.api.routes import student_auth as student_auth_router
from app.api.routes import websocket as websocket_router
from app.api.routes.conversation import build_conversation_router
from app.models.principal import PrincipalKind


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    force=True
)


# --- Lifespan ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


# --- FastAPI App Instance ---
app = FastAPI(
    title="Millat Vocational Training API",
    lifespan=lifespan
)

app.state.gateway = ConversationGateway(SessionLocal)

register_exception_handlers(app)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    logging.info(
        f"Request processed: {request.method} {request.url.path} - Completed in {process_time:.4f} secs"
    )

    return response


# --- CORS ---
# cookies are sent cross-origin, so the frontend origin must be explicit
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Routes ---
app.include_router(
    auth_router.router,
    prefix="/api/auth",
    tags=["Authentication"]
)

app.include_router(
    admin_auth_router.router,
    prefix="/api/auth/admin",
    tags=["Authentication"]
)

app.include_router(
    teacher_auth_router.router,
    prefix="/api/auth/teacher",
    tags=["Authentication"]
)

app.include_router(
    student_auth_router.router,
    prefix="/api/auth/student",
    tags=["Authentication"]
)

for kind in PrincipalKind:
    app.include_router(
        build_conversation_router(kind),
        prefix=f"/api/conversations/{kind.value}",
        tags=["conversations"]
    )

app.include_router(
    websocket_router.websocket_router,
    prefix="",
    tags=["websocket"]
)
