"""Physician profile: one row per user, written section by section.

Identifiers and professional info are stored as flat columns (they are
queried by facilities); the multi-instance and free-form sections are JSON.
`completion_status` holds the per-section booleans keyed by section id.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class PhysicianProfile(Base):
    __tablename__ = "physician_profiles"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), unique=True, nullable=False, index=True
    )

    # Personal identifiers
    first_name: Mapped[str | None] = mapped_column(String(100))
    middle_name: Mapped[str | None] = mapped_column(String(100))
    last_name: Mapped[str | None] = mapped_column(String(100))
    dba: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255))
    phone_number: Mapped[str | None] = mapped_column(Text)
    alternate_phone: Mapped[str | None] = mapped_column(Text)
    address_line1: Mapped[str | None] = mapped_column(String(255))
    address_line2: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(Text)
    zip_code: Mapped[str | None] = mapped_column(Text)

    # Professional information
    npi_number: Mapped[str | None] = mapped_column(String(10), index=True)
    dea_number: Mapped[str | None] = mapped_column(String(20))
    specialty: Mapped[str | None] = mapped_column(String(100))
    subspecialty: Mapped[str | None] = mapped_column(String(100))
    years_experience: Mapped[str | None] = mapped_column(Text)
    board_certified: Mapped[bool | None] = mapped_column(Boolean)
    board_certification_details: Mapped[str | None] = mapped_column(Text)

    # Multi-instance / free-form sections
    licenses: Mapped[list | None] = mapped_column(JSON, default=list)
    documents: Mapped[dict | None] = mapped_column(JSON, default=None)
    questionnaires: Mapped[dict | None] = mapped_column(JSON, default=None)
    travel_preferences: Mapped[dict | None] = mapped_column(JSON, default=None)

    # Digital attestation
    digital_signature: Mapped[str | None] = mapped_column(String(255))
    attestation_date: Mapped[str | None] = mapped_column(String(100))
    signature_timestamp: Mapped[str | None] = mapped_column(String(40))
    signature_ip: Mapped[str | None] = mapped_column(String(45))
    signature_device: Mapped[str | None] = mapped_column(Text)
    signature_version: Mapped[str | None] = mapped_column(String(10))
    attestation_agreed: Mapped[bool] = mapped_column(Boolean, default=False)

    # Progress
    completion_status: Mapped[dict] = mapped_column(JSON, default=dict)
    completion_percentage: Mapped[int] = mapped_column(Integer, default=0)
    is_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    current_section: Mapped[str | None] = mapped_column(String(40))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    user = relationship("User", back_populates="profile")
