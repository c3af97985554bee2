"""
Database models for the CRM contact store.

Uses SQLAlchemy 2.0. Only the tables the duplicate scrubber reads or rewrites
are modelled here; foreign keys to contacts never cascade, every child table
is reassigned or cleaned up explicitly by the merge engine.
"""

import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    create_engine,
    String,
    Integer,
    Float,
    DateTime,
    Text,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
    sessionmaker,
)
from sqlalchemy.sql import func

from crm.config import settings


# =============================================================================
# Database Engine and Session
# =============================================================================

def build_engine(url: str, echo: bool = False):
    """Create an engine; pool tuning only applies to server databases."""
    if url.startswith("sqlite"):
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,        # Connection timeout to prevent hanging
        pool_recycle=1800,      # Recycle connections every 30 minutes
        connect_args={
            "connect_timeout": 10,  # Connection timeout in seconds
        }
    )


engine = build_engine(settings.database.url, echo=settings.log_level == "DEBUG")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_session():
    """Context manager for database sessions."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind=None) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=bind or engine)


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Base Model
# =============================================================================

class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# =============================================================================
# Contacts
# =============================================================================

class Contact(Base):
    """
    A person or entity in the CRM.

    Every contact carries exactly one embedded "primary property" slot
    (property_address and friends). Further properties live in
    ContactProperty rows.
    """
    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    # Identity
    first_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone1: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    phone2: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    phone3: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    email1: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    email2: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    email3: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    # Embedded primary property
    property_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    zip_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    property_county: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    llc_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    property_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_bathrooms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    building_sqft: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    lot_size_sqft: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    effective_year_built: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_sale_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_sale_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    est_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    est_equity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    properties: Mapped[List["ContactProperty"]] = relationship(
        "ContactProperty", back_populates="contact", order_by="ContactProperty.created_at"
    )
    tags: Mapped[List["ContactTag"]] = relationship("ContactTag", back_populates="contact")

    __table_args__ = (
        Index("idx_contacts_created", "created_at", "id"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def __repr__(self) -> str:
        return f"<Contact {self.id} {self.full_name!r}>"


class ContactProperty(Base):
    """An additional property owned by a contact."""
    __tablename__ = "contact_properties"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    contact_id: Mapped[str] = mapped_column(String(36), ForeignKey("contacts.id"), nullable=False)

    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    zip_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    county: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    llc_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    property_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_bathrooms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    building_sqft: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    lot_size_sqft: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    effective_year_built: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_sale_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_sale_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    est_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    est_equity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    contact: Mapped["Contact"] = relationship("Contact", back_populates="properties")

    __table_args__ = (
        Index("idx_contact_properties_contact", "contact_id"),
    )

    def __repr__(self) -> str:
        return f"<ContactProperty {self.address} (contact={self.contact_id})>"


# =============================================================================
# Tags
# =============================================================================

class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Tag {self.name}>"


class ContactTag(Base):
    """Tag assignment; one row per (contact, tag)."""
    __tablename__ = "contact_tags"

    contact_id: Mapped[str] = mapped_column(String(36), ForeignKey("contacts.id"), primary_key=True)
    tag_id: Mapped[str] = mapped_column(String(36), ForeignKey("tags.id"), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    contact: Mapped["Contact"] = relationship("Contact", back_populates="tags")
    tag: Mapped["Tag"] = relationship("Tag")

    def __repr__(self) -> str:
        return f"<ContactTag contact={self.contact_id} tag={self.tag_id}>"


# =============================================================================
# Child records (reassigned to the surviving contact on merge)
# =============================================================================

class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    contact_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("contacts.id"), nullable=True, index=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="note")
    title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    contact_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("contacts.id"), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="open")
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Deal(Base):
    __tablename__ = "deals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    contact_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("contacts.id"), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    stage: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Document(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    contact_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("contacts.id"), nullable=True, index=True)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    storage_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Message(Base):
    """SMS message log."""
    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    contact_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("contacts.id"), nullable=True, index=True)
    direction: Mapped[str] = mapped_column(String(20), nullable=False, default="outbound")
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Call(Base):
    __tablename__ = "calls"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    contact_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("contacts.id"), nullable=True, index=True)
    direction: Mapped[str] = mapped_column(String(20), nullable=False, default="outbound")
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Conversation(Base):
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    contact_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("contacts.id"), nullable=True, index=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False, default="sms")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class ContactAssignment(Base):
    """Assignment of a contact to a team member."""
    __tablename__ = "contact_assignments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    contact_id: Mapped[str] = mapped_column(String(36), ForeignKey("contacts.id"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
