# Shared Module for the invoicing service
# Provides the Firebase client, authentication and common response models

from .firebase_client import init_firebase, Collections
from .auth import get_current_user, get_user_id
from .models import ErrorResponse, SuccessResponse

__all__ = [
    # Firebase
    'init_firebase',
    'Collections',
    # Auth
    'get_current_user',
    'get_user_id',
    # Models
    'ErrorResponse',
    'SuccessResponse',
]
