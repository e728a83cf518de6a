"""
Authentication Module - Firebase Auth verification
Every document is owned by the uid found in the caller's ID token
"""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from firebase_admin import auth

from .firebase_client import init_firebase

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


async def get_current_user(token: str = Depends(oauth2_scheme)) -> dict:
    """
    Verify Firebase ID token and return decoded user claims.

    Returns:
        dict: Decoded token with user info including uid and email

    Raises:
        HTTPException: 401 if token is invalid, expired, or revoked
    """
    init_firebase()

    try:
        logger.debug(f"Verifying token: {token[:10]}...")
        decoded_token = auth.verify_id_token(token)
        logger.debug(f"Token verified for user: {decoded_token.get('uid')}")
        return decoded_token

    except auth.ExpiredIdTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="ID token has expired. Please login again.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except auth.RevokedIdTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="ID token has been revoked. Please login again.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except (ValueError, auth.InvalidIdTokenError) as e:
        logger.error(f"Invalid ID token: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication credentials: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_user_id(current_user: dict) -> str:
    """Extract the owning uid from user claims"""
    user_id = current_user.get("uid")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No user ID found in token",
        )
    return user_id
