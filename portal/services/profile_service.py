"""
Profile Service - vendor and admin profiles keyed by identity provider user id
"""
from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional
import logging

from portal.core.errors import ProfileNotFound
from portal.db.models import Profile
from portal.utils.permissions import ROLES

logger = logging.getLogger(__name__)

COMPANY_FIELDS = (
    "company_name",
    "company_address",
    "company_phone",
    "company_registration",
    "contact_person",
)


def get_profile(db: Session, user_id: UUID) -> Profile:
    profile = db.get(Profile, user_id)
    if profile is None:
        raise ProfileNotFound()
    return profile


def create_profile(
    db: Session,
    user_id: UUID,
    email: str,
    role: str = "vendor",
    **company,
) -> Profile:
    """
    Create the profile for a newly signed-up user together with its company
    details in one write. Calling it again for the same user updates the
    company details instead.
    """
    if role not in ROLES:
        raise ValueError(f"Invalid role '{role}'")
    unknown = set(company) - set(COMPANY_FIELDS)
    if unknown:
        raise ValueError(f"Unknown profile fields: {sorted(unknown)}")

    profile = db.get(Profile, user_id)
    if profile is None:
        profile = Profile(id=user_id, email=email, role=role)
        db.add(profile)
        logger.info(f"Created {role} profile for {email}")
    for name, value in company.items():
        setattr(profile, name, value)

    db.commit()
    db.refresh(profile)
    return profile


def update_profile(db: Session, user_id: UUID, **company) -> Profile:
    unknown = set(company) - set(COMPANY_FIELDS)
    if unknown:
        raise ValueError(f"Unknown profile fields: {sorted(unknown)}")
    profile = get_profile(db, user_id)
    for name, value in company.items():
        setattr(profile, name, value)
    db.commit()
    db.refresh(profile)
    return profile


def set_role(db: Session, user_id: UUID, role: str) -> Profile:
    if role not in ROLES:
        raise ValueError(f"Invalid role '{role}'. Must be one of: {', '.join(ROLES)}")
    profile = get_profile(db, user_id)
    old_role = profile.role
    profile.role = role
    db.commit()
    db.refresh(profile)
    logger.info(f"Role of {profile.email} changed from {old_role} to {role}")
    return profile


def list_profiles(db: Session, role: Optional[str] = None):
    query = db.query(Profile)
    if role:
        query = query.filter(Profile.role == role)
    return query.order_by(Profile.created_at.desc())
