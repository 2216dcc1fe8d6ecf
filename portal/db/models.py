from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Integer, Text, Numeric, Boolean, Date,
    UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship
import uuid

from portal.db.session import Base
from portal.utils.clock import utcnow


class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the identity provider's user
    id = Column(Uuid, primary_key=True)
    email = Column(String, unique=True, nullable=False)
    role = Column(String, nullable=False, default="vendor")  # vendor, admin
    company_name = Column(String, nullable=True)
    company_address = Column(String, nullable=True)
    company_phone = Column(String, nullable=True)
    company_registration = Column(String, nullable=True)
    contact_person = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class RFP(Base):
    __tablename__ = "rfps"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    reference_number = Column(String, unique=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    category_id = Column(Uuid, ForeignKey("categories.id"), nullable=False)
    estimated_value = Column(Numeric(14, 2), nullable=True)
    submission_deadline = Column(DateTime, nullable=False)

    # Status: draft, published, closed, awarded, cancelled
    status = Column(String, nullable=False, default="draft")

    requirements = Column(Text, nullable=True)
    evaluation_criteria = Column(Text, nullable=True)
    created_by = Column(Uuid, ForeignKey("profiles.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Stamped once, on the first move into 'published'
    published_at = Column(DateTime, nullable=True)

    category = relationship("Category")
    documents = relationship("RFPDocument", back_populates="rfp", cascade="all, delete-orphan")
    bids = relationship("Bid", back_populates="rfp", cascade="all, delete-orphan")


class RFPDocument(Base):
    __tablename__ = "rfp_documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id = Column(Uuid, ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String, nullable=False)
    uploaded_by = Column(Uuid, ForeignKey("profiles.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    rfp = relationship("RFP", back_populates="documents")


class Bid(Base):
    __tablename__ = "bids"
    __table_args__ = (
        UniqueConstraint("rfp_id", "vendor_id", name="uq_bids_rfp_vendor"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id = Column(Uuid, ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False)
    vendor_id = Column(Uuid, ForeignKey("profiles.id"), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    proposal = Column(Text, nullable=False)

    # Status: pending, under_review, shortlisted, approved, rejected, withdrawn
    status = Column(String, nullable=False, default="pending")

    admin_notes = Column(Text, nullable=True)
    submitted_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    rfp = relationship("RFP", back_populates="bids")
    vendor = relationship("Profile")
    documents = relationship("BidDocument", back_populates="bid", cascade="all, delete-orphan")


class BidDocument(Base):
    __tablename__ = "bid_documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    bid_id = Column(Uuid, ForeignKey("bids.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    bid = relationship("Bid", back_populates="documents")


class Contract(Base):
    __tablename__ = "contracts"
    __table_args__ = (
        UniqueConstraint("rfp_id", name="uq_contracts_rfp"),
        UniqueConstraint("bid_id", name="uq_contracts_bid"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id = Column(Uuid, ForeignKey("rfps.id"), nullable=False)
    bid_id = Column(Uuid, ForeignKey("bids.id"), nullable=False)
    vendor_id = Column(Uuid, ForeignKey("profiles.id"), nullable=False)
    contract_value = Column(Numeric(14, 2), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    # Status: active, completed, terminated
    status = Column(String, nullable=False, default="active")

    terms = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    rfp = relationship("RFP")
    bid = relationship("Bid")
    vendor = relationship("Profile")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String, nullable=False)  # contract_award, ...
    read = Column(Boolean, nullable=False, default=False)
    link = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
