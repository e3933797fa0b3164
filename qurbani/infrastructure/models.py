# qurbani/infrastructure/models.py
"""
SQLAlchemy ORM models for the donation backend.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from qurbani.infrastructure.db.session import Base


def now():
    return datetime.now(timezone.utc)


class Donor(Base):
    __tablename__ = "donors"

    id = Column(Integer, primary_key=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    whatsapp_number = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), default=now, nullable=False)

    # Relationships
    donations = relationship("Donation", back_populates="donor", passive_deletes=True)


class Donation(Base):
    __tablename__ = "donations"

    id = Column(Integer, primary_key=True)
    donor_id = Column(Integer, ForeignKey("donors.id", ondelete="CASCADE"), nullable=False, index=True)
    price = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    type = Column(String(10), nullable=False)
    status = Column(String(10), nullable=False, default="pending", index=True)
    created_at = Column(DateTime(timezone=True), default=now, nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("type IN ('sheep', 'cow')", name="ck_donation_type"),
        CheckConstraint("status IN ('pending', 'sending', 'done')", name="ck_donation_status"),
    )

    # Relationships
    donor = relationship("Donor", back_populates="donations")
    cow_share = relationship("CowShare", back_populates="donation", uselist=False, passive_deletes=True)
    assignment = relationship("AgentDonation", back_populates="donation", uselist=False, passive_deletes=True)
    media = relationship("Media", back_populates="donation", passive_deletes=True)


class CowGroup(Base):
    __tablename__ = "cow_groups"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime(timezone=True), default=now, nullable=False)

    # Relationships
    shares = relationship("CowShare", back_populates="cow_group")


class CowShare(Base):
    __tablename__ = "cow_shares"

    # one share per donation, never reassigned
    donation_id = Column(Integer, ForeignKey("donations.id", ondelete="CASCADE"), primary_key=True)
    cow_group_id = Column(Integer, ForeignKey("cow_groups.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=now, nullable=False)

    # Relationships
    donation = relationship("Donation", back_populates="cow_share")
    cow_group = relationship("CowGroup", back_populates="shares")


class Agent(Base):
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True)
    agent_name = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), default=now, nullable=False)

    # Relationships
    assignments = relationship("AgentDonation", back_populates="agent", passive_deletes=True)


class AgentDonation(Base):
    __tablename__ = "agent_donations"

    id = Column(Integer, primary_key=True)
    agent_id = Column(Integer, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True)
    donation_id = Column(Integer, ForeignKey("donations.id", ondelete="CASCADE"), nullable=False)
    assigned_at = Column(DateTime(timezone=True), default=now, nullable=False)

    __table_args__ = (
        UniqueConstraint("donation_id", name="uq_agent_donation"),
    )

    # Relationships
    agent = relationship("Agent", back_populates="assignments")
    donation = relationship("Donation", back_populates="assignment")


class Media(Base):
    __tablename__ = "media"

    id = Column(Integer, primary_key=True)
    donation_id = Column(Integer, ForeignKey("donations.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(10), nullable=False)
    file_path = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now, nullable=False)

    __table_args__ = (
        CheckConstraint("type IN ('image', 'video')", name="ck_media_type"),
    )

    # Relationships
    donation = relationship("Donation", back_populates="media")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    donation_id = Column(Integer, ForeignKey("donations.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    sent = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now, nullable=False)
