"""
Firebase Client - Firestore connection for the ad-group workflow
Single database shared by the API and background reconcilers
"""

import json
import logging
import os

import firebase_admin
import firebase_admin.exceptions
from firebase_admin import credentials, initialize_app, firestore

logger = logging.getLogger(__name__)

_initialized = False


def _load_credentials() -> credentials.Certificate:
    """Service account from a key file path, or inline JSON for hosted deploys"""
    key_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    if key_path:
        return credentials.Certificate(key_path)
    key_json = os.getenv("FIREBASE_CREDENTIALS_JSON")
    if key_json:
        return credentials.Certificate(json.loads(key_json))
    raise ValueError("Set GOOGLE_APPLICATION_CREDENTIALS or FIREBASE_CREDENTIALS_JSON")


def init_firebase():
    """Initialize the Firebase Admin app once per process"""
    global _initialized
    if _initialized or firebase_admin._apps:
        return

    bucket = os.getenv("FIREBASE_STORAGE_BUCKET")
    try:
        initialize_app(_load_credentials(), {"storageBucket": bucket} if bucket else None)
    except (ValueError, OSError, firebase_admin.exceptions.FirebaseError) as e:
        logger.error(f"Firebase Admin SDK could not start: {e}")
        raise
    _initialized = True
    logger.info(f"Firebase Admin SDK ready (bucket: {bucket or 'default'})")


def get_db():
    """Firestore client for the default app"""
    init_firebase()
    return firestore.client()


class Collections:
    """
    Firestore document paths - centralized so services and tests agree

    Pattern: adGroups/{groupId}/{subcollection}
    """

    @staticmethod
    def ad_groups():
        return "adGroups"

    @staticmethod
    def ad_group(group_id: str):
        return f"adGroups/{group_id}"

    @staticmethod
    def assets(group_id: str):
        return f"adGroups/{group_id}/assets"

    @staticmethod
    def asset(group_id: str, asset_id: str):
        return f"adGroups/{group_id}/assets/{asset_id}"

    @staticmethod
    def asset_history(group_id: str, asset_id: str):
        return f"adGroups/{group_id}/assets/{asset_id}/history"

    @staticmethod
    def recipes(group_id: str):
        return f"adGroups/{group_id}/recipes"

    # === SCRUB ARCHIVE ===
    @staticmethod
    def scrubbed_history(group_id: str):
        return f"adGroups/{group_id}/scrubbedHistory"

    @staticmethod
    def scrubbed_root(group_id: str, root_id: str):
        return f"adGroups/{group_id}/scrubbedHistory/{root_id}"

    @staticmethod
    def scrubbed_assets(group_id: str, root_id: str):
        return f"adGroups/{group_id}/scrubbedHistory/{root_id}/assets"

    @staticmethod
    def scrubbed_asset(group_id: str, root_id: str, asset_id: str):
        return f"adGroups/{group_id}/scrubbedHistory/{root_id}/assets/{asset_id}"

    # === PROJECTS ===
    @staticmethod
    def project(project_id: str):
        return f"projects/{project_id}"

