"""Firebase Admin SDK initialization."""

import json

import firebase_admin
from firebase_admin import credentials
from structlog import get_logger

from app.core.exceptions import ProviderConfigurationError

logger = get_logger(__name__)

FIREBASE_APP_NAME = "push-delivery"


def initialize_firebase_app(
    service_account_json: str,
    name: str = FIREBASE_APP_NAME,
) -> firebase_admin.App:
    """
    Initialize a named Firebase Admin app from a service account.

    Args:
        service_account_json: Raw JSON string of the service account
        name: Firebase app name; an app already registered under it is reused

    Returns:
        Firebase app instance

    Raises:
        ProviderConfigurationError: If the service account cannot be loaded
    """
    try:
        return firebase_admin.get_app(name)
    except ValueError:
        pass

    try:
        cred_dict = json.loads(service_account_json)
        cred = credentials.Certificate(cred_dict)
        app = firebase_admin.initialize_app(cred, name=name)
    except (ValueError, TypeError) as e:
        logger.error("firebase_initialization_failed", error=str(e))
        raise ProviderConfigurationError(f"Invalid Firebase service account: {e!s}") from e

    logger.info("firebase_initialized", project_id=cred_dict.get("project_id"), app_name=name)
    return app
