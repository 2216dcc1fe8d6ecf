"""
Request dependencies: database session, current user, lifecycle manager
"""
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from portal.db.models import Profile
from portal.db.session import get_db
from portal.services.document_store import DocumentStore, get_document_store
from portal.services.lifecycle import LifecycleManager
from portal.utils.permissions import require_admin, require_vendor
from portal.utils.security import decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token")


def subject_from_token(token: str):
    """User id carried by a bearer token, or None"""
    claims = decode_access_token(token)
    if not claims or not claims.get("sub"):
        return None
    try:
        return UUID(str(claims["sub"]))
    except ValueError:
        return None


def user_from_token(db: Session, token: str):
    """Resolve a bearer token to its Profile, or None"""
    user_id = subject_from_token(token)
    if user_id is None:
        return None
    return db.get(Profile, user_id)


def get_token_subject(token: str = Depends(oauth2_scheme)) -> UUID:
    """Authenticated user id, whether or not a profile exists yet"""
    user_id = subject_from_token(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Profile:
    user = user_from_token(db, token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_current_admin(current_user: Profile = Depends(get_current_user)) -> Profile:
    require_admin(current_user)
    return current_user


def get_current_vendor(current_user: Profile = Depends(get_current_user)) -> Profile:
    require_vendor(current_user)
    return current_user


def get_lifecycle(
    db: Session = Depends(get_db),
    documents: DocumentStore = Depends(get_document_store),
) -> LifecycleManager:
    return LifecycleManager(db, documents)
