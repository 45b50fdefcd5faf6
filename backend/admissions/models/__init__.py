"""Aggregate model imports for Alembic auto-detection."""

from admissions.models.application_draft import ApplicationDraft  # noqa: F401
