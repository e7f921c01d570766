import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from .config import SUPABASE_JWT_AUDIENCE, SUPABASE_JWT_SECRET
from .database import get_db
from .models import Profile

logger = logging.getLogger(__name__)

security = HTTPBearer()

ALGORITHM = "HS256"


def verify_access_token(token: str) -> dict:
    """
    Verify a Supabase access token and return its claims.

    Supabase signs access tokens with the project's JWT secret (HS256) and sets
    aud="authenticated" for signed-in users.
    """
    if not SUPABASE_JWT_SECRET:
        logger.error("❌ SUPABASE_JWT_SECRET not configured")
        raise HTTPException(status_code=500, detail="Authentication not configured")

    try:
        return jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=SUPABASE_JWT_AUDIENCE,
        )
    except ExpiredSignatureError as e:
        logger.warning("⚠️ Expired access token")
        raise HTTPException(status_code=401, detail="Token has expired") from e
    except JWTError as e:
        logger.warning(f"⚠️ Invalid access token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token") from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Profile:
    """Resolve the requesting user's profile from the bearer token"""

    if not credentials:
        logger.error("❌ No credentials provided")
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, length: {len(token)}")
        raise HTTPException(
            status_code=401, detail="Invalid token format. Expected a valid JWT token."
        )

    claims = verify_access_token(token)
    user_id = claims.get("sub")
    if not user_id:
        logger.error(f"❌ Token missing sub claim. Available claims: {list(claims.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        logger.warning(f"⚠️ No profile for authenticated user {user_id}")
        raise HTTPException(status_code=401, detail="User profile not found")

    logger.debug(f"✅ User authenticated: {profile.id} ({profile.role})")
    return profile
