from contextlib import asynccontextmanager
from datetime import datetime
import logging
import os

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlmodel import Session, SQLModel, text
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import create_db, engine, get_session
import models  # noqa: F401; ensure tables are registered before create_db
from models import UserRole
from responses import failure
from routers.admissions import router as admissions_router
from routers.ai import router as ai_router
from routers.auth import router as auth_router
from routers.notifications import router as notifications_router
from routers.patients import router as patients_router, visits_router
from routers.pharmacy import router as pharmacy_router
from routers.supplies import router as supplies_router
from routers.wards import router as wards_router
from services.auth import get_user_from_token
from services.errors import WorkflowError
from ws import manager

logging.basicConfig(level=os.getenv("WARDBRIDGE_LOG_LEVEL", "INFO"))
logger = logging.getLogger("wardbridge")

WARD_CHANNEL_ROLES = {UserRole.WARD_ADMIN, UserRole.NURSE, UserRole.DOCTOR, UserRole.PHARMACIST, UserRole.ADMIN}


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db()
    if os.getenv("WARDBRIDGE_SEED_DEMO", "0") == "1":
        from seed import run_seed
        run_seed()
    yield


app = FastAPI(title="Wardbridge", version="0.1.0", lifespan=lifespan)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=failure(str(exc.detail)), headers=exc.headers)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=failure(exc.message))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        fields.append(".".join(location) or error.get("msg", "request"))
    return JSONResponse(
        status_code=400,
        content=failure(f"Missing or invalid fields: {', '.join(dict.fromkeys(fields))}"),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled server error for %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=failure("Internal server error"))


@app.middleware("http")
async def no_cache_api_responses(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith(
        (
            "/admissions",
            "/ward-admin",
            "/wards",
            "/pharmacist",
            "/patients",
            "/visits",
            "/notifications",
            "/auth",
            "/ai",
        )
    ):
        response.headers["Cache-Control"] = "no-store, max-age=0"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
    return response


app.include_router(auth_router)
app.include_router(patients_router)
app.include_router(visits_router)
app.include_router(admissions_router)
app.include_router(wards_router)
app.include_router(supplies_router)
app.include_router(pharmacy_router)
app.include_router(notifications_router)
app.include_router(ai_router)


@app.get("/health")
def health():
    try:
        with Session(engine) as session:
            session.exec(text("SELECT 1"))
        return {
            "success": True,
            "data": {
                "status": "ok",
                "database": "connected",
                "timestamp": datetime.utcnow().isoformat(),
            },
        }
    except Exception:
        logger.exception("Health check failed")
        return JSONResponse(status_code=500, content=failure("Database unavailable"))


@app.post("/demo/reset")
def demo_reset():
    if os.getenv("WARDBRIDGE_ENABLE_DEMO_RESET", "0") != "1":
        raise HTTPException(status_code=404, detail="Not found")

    print("[DEMO] Reset triggered")
    create_db()
    with Session(engine) as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            session.exec(table.delete())  # type: ignore[arg-type]
        session.commit()

    from seed import run_seed
    run_seed()

    return {"success": True, "message": "demo reset complete"}


async def _authenticate_socket(websocket: WebSocket, session: Session):
    """Resolve the ``?token=`` user, closing with 1008 when it is missing or bad.

    The session is only needed for this lookup and is released before the
    socket settles into its receive loop.
    """
    token = websocket.query_params.get("token")
    try:
        user = get_user_from_token(token, session) if token else None
    except HTTPException:
        user = None
    finally:
        session.close()
    if user is None:
        await websocket.close(code=1008)
    return user


@app.websocket("/ws/notifications")
async def notifications_ws(websocket: WebSocket, session: Session = Depends(get_session)):
    user = await _authenticate_socket(websocket, session)
    if user is None:
        return

    await manager.connect_user(user.id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect_user(user.id, websocket)


@app.websocket("/ws/wards/{ward_id}")
async def ward_ws(websocket: WebSocket, ward_id: int, session: Session = Depends(get_session)):
    user = await _authenticate_socket(websocket, session)
    if user is None:
        return
    if user.role not in WARD_CHANNEL_ROLES:
        await websocket.close(code=1008)
        return

    await manager.connect_ward(ward_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect_ward(ward_id, websocket)
