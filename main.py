from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from routers.admin import router as admin_router
from routers.auth import router as auth_router
from utils.otp_service import get_otp_ledger
from utils.security import get_admin_principal
from utils.user_store import get_user_store


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Auth System Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(admin_router)


# Every error body is {"message": ...}, matching the success responses.
@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"message": exc.detail}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse({"message": "Invalid input data"}, status_code=400)


@app.on_event("startup")
def _log_config():
    # Build the shared stores up front so backend selection shows in the startup log.
    get_user_store()
    get_otp_ledger()
    logger.info("Admin email: %s", get_admin_principal().email)
    logger.info("Email backend: %s", "brevo" if os.getenv("BREVO_API_KEY") else "console")


@app.get("/")
def root():
    return {"status": "Backend running"}
