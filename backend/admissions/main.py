from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from admissions.config import settings
from admissions.middleware.exceptions import register_exception_handlers
from admissions.middleware.security import SecurityHeadersMiddleware
from admissions.routers import applications, health, renewals, tracking
from admissions.routers.wizard import build_wizard_router
from admissions.services.scheduler import lifespan

app = FastAPI(
    title="Admissions",
    description="Hostel admission and stay-renewal wizards",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
app.add_middleware(SecurityHeadersMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)

# Wizard verbs are registered before the start routes that share the prefix
app.include_router(build_wizard_router("application"), prefix="/api/applications/wizard", tags=["applications"])
app.include_router(applications.router, prefix="/api/applications", tags=["applications"])

app.include_router(build_wizard_router("renewal"), prefix="/api/renewals/wizard", tags=["renewals"])
app.include_router(renewals.router, prefix="/api/renewals", tags=["renewals"])

app.include_router(tracking.router, prefix="/api/tracking", tags=["tracking"])
