from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from safety_net.core.config import settings
from safety_net.core.errors import ConfigurationError, DependencyError
from safety_net.routes import alerts, cron

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="MediCare Companion Safety Net")

allow_origins = settings.allowed_origins
logging.info(f"Allowed CORS origins: {allow_origins}")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logging.error(f"Configuration error: {exc.details}")
    return JSONResponse(
        status_code=500,
        content={"error": "Configuration Error", "details": exc.details}
    )


@app.exception_handler(DependencyError)
async def dependency_error_handler(request: Request, exc: DependencyError):
    logging.error(f"Cron Error ({exc.stage}): {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "message": str(exc)}
    )


@app.exception_handler(StarletteHTTPException)
async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        return JSONResponse(
            status_code=405,
            content={"error": "Method not allowed"},
            headers=getattr(exc, "headers", None),
        )
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logging.exception("Unhandled server error")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error"}
    )


app.include_router(cron.router, prefix="/api/cron", tags=["cron"])
app.include_router(alerts.router, prefix="/api", tags=["alerts"])


@app.on_event("startup")
def startup_event():
    if settings.STORAGE_BACKEND.lower() == "sql" and settings.DATABASE_URL:
        from safety_net.db.migrations import ensure_schema
        from safety_net.db.session import make_engine

        engine = make_engine(settings.DATABASE_URL)
        try:
            ensure_schema(engine)
        finally:
            engine.dispose()


@app.get("/")
def read_root():
    return {"text": "MediCare Companion safety net is running"}


@app.get('/health')
def health_check():
    return {"status": "healthy"}
