from datetime import datetime
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import Settings, get_settings
from .core.logging import configure_logging
from .api.routes_imports import router as imports_router

configure_logging()
settings = get_settings()


def _split_origins(value: str) -> List[str]:
    return [o.strip() for o in value.split(",") if o.strip()]


def cors_origins(settings: Settings) -> List[str]:
    """
    Allowed browser origins for the dashboard calling the import API.

    Production requires FRONTEND_ORIGIN and never answers with "*".
    Elsewhere "*" is used when CORS_ALLOW_ALL_ORIGINS is set or nothing is configured.
    """
    if settings.ENV.lower() == "prod":
        if not settings.FRONTEND_ORIGIN:
            raise RuntimeError(
                "FRONTEND_ORIGIN must be set in production; refusing to start with wide-open CORS."
            )
        return _split_origins(settings.FRONTEND_ORIGIN)

    if settings.CORS_ALLOW_ALL_ORIGINS or not settings.FRONTEND_ORIGIN:
        return ["*"]
    return _split_origins(settings.FRONTEND_ORIGIN)


app = FastAPI(title="Review Import Service", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(settings),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    allow_credentials=False,
)

app.include_router(imports_router, prefix=settings.API_PREFIX)


@app.get("/health")
def health():
    return {
        "status": "healthy",
        "service": "review-import-service",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "version": app.version,
    }
