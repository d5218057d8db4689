import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .db import init_db
from .errors import CopilotError, ValidationError
from . import auth, billing, profile, sessions, tokens

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Cognitive Copilot")
init_db()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CopilotError)
def copilot_error(request: Request, exc: CopilotError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
def invalid_body(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return JSONResponse({"detail": "; ".join(problems) or "Invalid request"}, status_code=ValidationError.status_code)


@app.get("/health")
def health():
    return JSONResponse({"ok": True})


app.include_router(auth.router)
app.include_router(profile.router)
app.include_router(billing.router)
app.include_router(tokens.router)
app.include_router(sessions.router)
