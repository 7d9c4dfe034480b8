"""Aggregate model imports for Alembic auto-detection."""

from app.models.user import User, UserRole
from app.models.physician_profile import PhysicianProfile

__all__ = ["User", "UserRole", "PhysicianProfile"]
