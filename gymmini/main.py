from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse

from gymmini.db import get_db
from gymmini.db_init import ensure_indexes
from gymmini.errors import GymError
from gymmini.routes import attendance, auth, dashboard, employees, members, sessions, trainers, users
from gymmini.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

app = FastAPI(title="GymMini")

# Routers
app.include_router(auth.router)
app.include_router(members.router)
app.include_router(trainers.router)
app.include_router(employees.router)
app.include_router(users.router)
app.include_router(dashboard.router)
app.include_router(sessions.router)
app.include_router(attendance.router)


@app.on_event("startup")
def _startup():
    configure_logging()
    ensure_indexes(get_db())
    logger.info("indexes ensured")


@app.exception_handler(GymError)
async def gym_error_handler(request: Request, exc: GymError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"detail": exc.message, "code": exc.code}, status_code=exc.status_code)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@app.get("/health")
def health():
    return {"status": "ok"}
