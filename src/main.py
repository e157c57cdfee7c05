import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import get_settings, validate_settings
from create_tables import create_tables
from database import SessionLocal

from modules.auth.services.auth_service import AuthService
from modules.common.handlers import register_exception_handlers
from modules.common.http import close_http_client
from modules.envelopes.job import start_cleanup_job
from modules.auth.controllers.auth_controller import router as auth_router
from modules.auth.controllers.api_key_controller import router as api_key_router
from modules.envelopes.controllers.session_controller import router as session_router
from modules.envelopes.controllers.envelope_controller import router as envelope_router
from modules.envelopes.controllers.document_controller import router as document_router
from modules.envelopes.controllers.admin_controller import router as admin_router
from modules.verification.controllers.verification_controller import router as verification_router
from modules.signing.controllers.pdf_controller import router as signing_router
from modules.webhooks.controllers.webhook_controller import router as webhook_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup logic ---
    print("🚀 Starting application...")
    validate_settings(settings)
    print("✅ Configuration validated")
    create_tables()
    scheduler = start_cleanup_job()
    print("✅ Signing token cleanup job started")
    _create_bootstrap_admin()
    yield
    # --- Shutdown logic ---
    scheduler.shutdown(wait=False)
    close_http_client()
    print("🛑 Application stopped")


def _create_bootstrap_admin():
    """Creates the first admin from ADMIN_EMAIL / ADMIN_PASSWORD."""
    with SessionLocal() as session:
        admin = AuthService.ensure_bootstrap_admin(session, settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD)
        if admin is not None:
            print(f"✅ Bootstrap admin created: {admin.email}")


app = FastAPI(
    title=settings.APP_NAME,
    description="API for identity-verified electronic signature envelopes",
    version=settings.APP_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Language",
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "X-API-Key",
        "X-Signing-Token",
        "Origin",
        "Access-Control-Request-Method",
        "Access-Control-Request-Headers"
    ],
    expose_headers=["Content-Disposition", "X-Signatures-Applied", "X-Signatures-Skipped"],
    max_age=86400,
)

register_exception_handlers(app)

# Routers
app.include_router(auth_router)
app.include_router(api_key_router)
app.include_router(admin_router)
app.include_router(session_router)
app.include_router(envelope_router)
app.include_router(document_router)
app.include_router(verification_router)
app.include_router(signing_router)
app.include_router(webhook_router, prefix="/webhook", tags=["webhooks"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
