# main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.config import settings

# ------------------------------------------------------------
# ROUTER
# ------------------------------------------------------------
# Admin: piani, emissione/rinnovo/revoca, attivazioni, audit
from app.api.subscription import router as subscription_router

# Device: activate / heartbeat / validate / deactivate
from app.api.devices import router as devices_router

# DB session + creazione tabelle
from app.db.session import get_db, init_db

logger = logging.getLogger("uvicorn.error")


# ------------------------------------------------------------
# CREAZIONE DELL'APPLICAZIONE FASTAPI
# ------------------------------------------------------------
def create_app() -> FastAPI:
    """Crea e configura l'applicazione FastAPI del license server."""
    app_version = settings.APP_VERSION
    logger.setLevel(settings.LOG_LEVEL.upper())

    app = FastAPI(
        title=settings.APP_NAME,
        version=app_version,
        description=(
            "License server WAB Sender: piani, emissione chiavi, "
            "attivazione device con limite posti, heartbeat, rinnovo e revoca."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # --------------------------------------------------------
    # CORS
    # --------------------------------------------------------
    ALLOWED_ORIGINS = [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1",
    ]

    extra = settings.CORS_EXTRA
    if extra:
        for item in [x.strip() for x in extra.split(",") if x.strip()]:
            if item not in ALLOWED_ORIGINS:
                ALLOWED_ORIGINS.append(item)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --------------------------------------------------------
    # ROUTES
    # --------------------------------------------------------
    app.include_router(subscription_router)
    app.include_router(devices_router)

    # --------------------------------------------------------
    # ROOT DI SERVIZIO
    # --------------------------------------------------------
    @app.get("/", tags=["root"])
    def root():
        return {
            "status": "online",
            "service": settings.APP_NAME,
            "version": app_version,
        }

    @app.get("/api/version", tags=["system"])
    def version():
        """Versione dell'applicazione (env APP_VERSION)."""
        return {"version": app_version}

    # --------------------------------------------------------
    # HEALTHZ (API + DB PING)
    # --------------------------------------------------------
    @app.get("/api/healthz", tags=["system"])
    def healthz(db: Session = Depends(get_db)):
        try:
            db.execute(text("SELECT 1"))
            return {
                "status": "ok",
                "service": settings.APP_NAME,
                "db": "ok",
                "version": app_version,
            }
        except Exception as e:
            # 503 = Service Unavailable
            raise HTTPException(
                status_code=503,
                detail={
                    "status": "degraded",
                    "db": "error",
                    "error": str(e),
                    "version": app_version,
                },
            )

    # --------------------------------------------------------
    # AVVIO
    # --------------------------------------------------------
    @app.on_event("startup")
    def _on_startup():
        init_db()
        logger.info("[startup] %s %s (%s)", settings.APP_NAME, app_version, settings.ENV)

    return app


# ------------------------------------------------------------
# ISTANZA APPLICAZIONE
# ------------------------------------------------------------
app = create_app()

# ------------------------------------------------------------
# AVVIO LOCALE
# ------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
