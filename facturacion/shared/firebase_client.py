"""
Firebase Client - Firestore connection for the invoicing service
Documents are stored in flat per-collection paths, scoped by a userId field
"""

import os
import json
import logging
from firebase_admin import credentials, initialize_app
import firebase_admin

logger = logging.getLogger(__name__)

_initialized = False


def init_firebase():
    """Initialize Firebase Admin SDK with credentials"""
    global _initialized
    if _initialized or firebase_admin._apps:
        return

    try:
        cred_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        project_id = os.getenv("FIREBASE_PROJECT_ID")

        if not cred_path:
            cred_json = os.getenv("FIREBASE_CREDENTIALS_JSON")
            if cred_json:
                cred = credentials.Certificate(json.loads(cred_json))
            else:
                raise ValueError("No Firebase credentials found")
        else:
            cred = credentials.Certificate(cred_path)

        options = {"projectId": project_id} if project_id else None
        initialize_app(cred, options)
        _initialized = True
        logger.info("Firebase Admin SDK initialized")

    except Exception as e:
        logger.error(f"Firebase initialization error: {e}")
        raise


class Collections:
    """
    Firestore collection names - centralized so every service uses the same paths
    """

    INVOICES = "invoices"
    QUOTES = "quotes"
    CLIENTS = "clients"
    PRODUCTS = "products"
    COUNTERS = "counters"

    @staticmethod
    def counter_id(user_id: str, counter_type: str) -> str:
        return f"{user_id}_{counter_type}"
