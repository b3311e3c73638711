# src/clinicflow/api/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI

from clinicflow import __version__
from clinicflow.api import (
    admin,
    appointments,
    auth,
    bootstrap,
    clinics,
    courses,
    habits,
    onboarding,
    patients,
    prescriptions,
    protocols,
    referrals,
    symptoms,
)
from clinicflow.config import get_settings
from clinicflow.core.error_handlers import register_error_handlers
from clinicflow.core.health import router as health_router
from clinicflow.core.logging import setup_json_logging
from clinicflow.core.middleware import RequestIDMiddleware

setup_json_logging()
log = logging.getLogger("clinicflow.api")

settings = get_settings()

app = FastAPI(title=settings.APP_NAME, version=__version__)

app.add_middleware(RequestIDMiddleware)
register_error_handlers(app)

app.include_router(health_router)
app.include_router(bootstrap.router)
app.include_router(auth.router)
app.include_router(admin.router)
app.include_router(clinics.router)
app.include_router(patients.router)
app.include_router(patients.relationships_router)
app.include_router(protocols.router)
app.include_router(prescriptions.router)
app.include_router(symptoms.router)
app.include_router(courses.router)
app.include_router(appointments.router)
app.include_router(habits.router)

# authenticated routes first: /onboarding/templates must not be read as a token
app.include_router(onboarding.router)
app.include_router(onboarding.public_router)
app.include_router(referrals.router)
app.include_router(referrals.public_router)
app.include_router(clinics.public_router)

log.info("app started", extra={"env": settings.APP_ENV, "version": __version__})
