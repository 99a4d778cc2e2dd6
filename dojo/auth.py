import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .config import SUPABASE_JWT_AUDIENCE, SUPABASE_JWT_SECRET
from .database import get_db
from .models import Profile, Student

logger = logging.getLogger(__name__)

security = HTTPBearer()

STAFF_ROLES = ("admin", "instructor")


def verify_supabase_token(token: str) -> dict:
    """
    Verify a Supabase access token (HS256 signed with the project JWT secret).
    Returns the decoded claims.
    """
    if not SUPABASE_JWT_SECRET:
        logger.error("❌ SUPABASE_JWT_SECRET not configured")
        raise HTTPException(status_code=500, detail="Authentication not configured")

    try:
        claims = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience=SUPABASE_JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.warning(f"⚠️ Token verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired token") from e

    if not claims.get("sub"):
        logger.error("❌ Token missing subject claim")
        raise HTTPException(status_code=401, detail="Invalid token")

    return claims


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Profile:
    """Resolve the bearer token to the caller's profile"""
    claims = verify_supabase_token(credentials.credentials)
    auth_uid = claims["sub"]

    profile = db.query(Profile).filter(Profile.auth_uid == auth_uid).first()
    if not profile:
        logger.warning(f"⚠️ No profile for auth uid {auth_uid}")
        raise HTTPException(status_code=401, detail="User profile not found")

    return profile


async def require_admin(current_user: Profile = Depends(get_current_user)) -> Profile:
    if current_user.role != "admin":
        logger.warning(f"🚫 Admin access denied for profile {current_user.id}")
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


async def require_staff(current_user: Profile = Depends(get_current_user)) -> Profile:
    if current_user.role not in STAFF_ROLES:
        logger.warning(f"🚫 Staff access denied for profile {current_user.id}")
        raise HTTPException(status_code=403, detail="Staff access required")
    return current_user


def is_staff(profile: Profile) -> bool:
    return profile.role in STAFF_ROLES


def ensure_family_access(profile: Profile, family_id: int) -> None:
    """Family users may only touch their own family's rows; staff see everything"""
    if is_staff(profile):
        return
    if profile.family_id is None or profile.family_id != family_id:
        raise HTTPException(status_code=403, detail="Not allowed to access this family")


def ensure_student_access(db: Session, profile: Profile, student_id: int) -> None:
    """Same rule as ensure_family_access, resolved through the student's family"""
    if is_staff(profile):
        return
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    ensure_family_access(profile, student.family_id)
