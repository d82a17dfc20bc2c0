"""
GitHub credential storage and authorization guard.

The credential is device-local: it is encrypted at rest with Fernet and kept
in the local storage scope, never in the account-synced scope that carries
folder shares.
"""

import base64
import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from ..exceptions import AuthenticationError, NetworkError, create_error_context
from ..storage.base import KeyValueStore, StorageScope
from .github import GitHubClient

logger = logging.getLogger(__name__)

CREDENTIAL_KEY = "github_auth"


@dataclass
class GitHubCredential:
    """A personal access token plus the identity it belongs to."""
    access_token: str
    token_type: str = "Bearer"
    scope: str = ""
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    connected_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "scope": self.scope,
            "username": self.username,
            "avatar_url": self.avatar_url,
            "connected_at": self.connected_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GitHubCredential":
        connected_at = datetime.utcnow()
        if data.get("connected_at"):
            connected_at = datetime.fromisoformat(data["connected_at"])
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope", ""),
            username=data.get("username"),
            avatar_url=data.get("avatar_url"),
            connected_at=connected_at,
        )


class SecureCredentialStore:
    """
    Encrypted storage for the GitHub credential.

    Tokens are encrypted at rest using Fernet symmetric encryption.
    """

    def __init__(self, store: KeyValueStore, encryption_key: Optional[str] = None):
        """
        Initialize credential store.

        Args:
            store: Device-local key-value store
            encryption_key: Fernet key or passphrase; ephemeral when omitted
        """
        if store.scope != StorageScope.LOCAL:
            raise ValueError("Credentials must be kept in device-local storage")
        self.store = store
        self._cipher = self._get_cipher(encryption_key)

    @staticmethod
    def _get_cipher(key: Optional[str]) -> Fernet:
        """Get or create encryption cipher."""
        if not key:
            # Generate a key if not provided (will be lost on restart)
            logger.warning(
                "MARKSYNC_TOKEN_ENCRYPTION_KEY not set. "
                "Using ephemeral key - the GitHub connection will be lost on restart."
            )
            return Fernet(Fernet.generate_key())

        # Fernet keys are 44 chars base64; derive one from any other passphrase
        if len(key) != 44:
            key = base64.urlsafe_b64encode(hashlib.sha256(key.encode()).digest()).decode()
        return Fernet(key.encode())

    async def save(self, credential: GitHubCredential) -> None:
        encrypted = self._cipher.encrypt(json.dumps(credential.to_dict()).encode())
        await self.store.set(CREDENTIAL_KEY, encrypted.decode("ascii"))
        logger.info(f"Stored GitHub credential for {credential.username or 'unknown user'}")

    async def load(self) -> Optional[GitHubCredential]:
        encrypted = await self.store.get(CREDENTIAL_KEY)
        if not encrypted:
            return None

        try:
            decrypted = self._cipher.decrypt(encrypted.encode("ascii"))
            return GitHubCredential.from_dict(json.loads(decrypted.decode()))
        except (InvalidToken, ValueError, KeyError) as e:
            logger.error(f"Failed to decrypt stored GitHub credential: {e}")
            return None

    async def clear(self) -> bool:
        removed = await self.store.remove(CREDENTIAL_KEY)
        if removed:
            logger.info("Cleared stored GitHub credential")
        return removed


class AuthGuard:
    """
    Gatekeeper for every remote call.

    Supplies the bearer token, validates it against the identity endpoint and
    turns authorization failures into a cleared credential so that batch loops
    can stop instead of repeating the same failure.
    """

    def __init__(self, client: GitHubClient, credentials: SecureCredentialStore):
        self.client = client
        self.credentials = credentials

    async def require_token(self, operation: str = "") -> str:
        """
        Stored access token.

        Raises:
            AuthenticationError: If no credential is stored (before any network call)
        """
        credential = await self.credentials.load()
        if credential is None:
            raise AuthenticationError(
                "Not connected to GitHub",
                error_code="NO_CREDENTIAL",
                context=create_error_context(operation=operation),
                user_message="Connect your GitHub account to sync folders.",
            )
        return credential.access_token

    async def validate(self, credential: Optional[str] = None) -> bool:
        """
        Probe the identity endpoint with a token (the stored one by default).

        Returns:
            True if GitHub accepts the token
        """
        token = credential
        if token is None:
            stored = await self.credentials.load()
            if stored is None:
                return False
            token = stored.access_token

        try:
            await self.client.get_user(token)
            return True
        except AuthenticationError:
            return False
        except NetworkError as e:
            logger.warning(f"Could not validate GitHub credential: {e.message}")
            return False

    async def check_stored_credential(self) -> bool:
        """
        Startup check: drop a credential GitHub no longer accepts.

        A network failure keeps the credential; the app runs degraded until
        GitHub is reachable again.
        """
        stored = await self.credentials.load()
        if stored is None:
            return False

        try:
            await self.client.get_user(stored.access_token)
            return True
        except AuthenticationError as e:
            await self.intercept_error(e)
            return False
        except NetworkError as e:
            logger.warning(f"GitHub unreachable during credential check: {e.message}")
            return False

    async def intercept_error(self, error: BaseException) -> bool:
        """
        Inspect an error raised by a remote call.

        Returns:
            True if it was an authorization failure (the credential is cleared)
        """
        if not isinstance(error, AuthenticationError):
            return False

        logger.warning(f"GitHub authorization failed, clearing credential: {error.message}")
        await self.credentials.clear()
        return True

    async def connect(self, token: str) -> GitHubCredential:
        """
        Validate a personal access token and store it.

        Raises:
            AuthenticationError: If GitHub rejects the token
        """
        user = await self.client.get_user(token)
        credential = GitHubCredential(
            access_token=token,
            username=user.get("login"),
            avatar_url=user.get("avatar_url"),
        )
        await self.credentials.save(credential)
        return credential

    async def disconnect(self) -> bool:
        return await self.credentials.clear()

    async def status(self) -> Dict[str, Any]:
        credential = await self.credentials.load()
        return {
            "connected": credential is not None,
            "username": credential.username if credential else None,
            "connected_at": credential.connected_at.isoformat() if credential else None,
        }
