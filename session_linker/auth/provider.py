"""
Auth Provider Interface

The hosted auth platform is an external collaborator: password hashing,
OAuth token exchange and session issuance all happen there. The linker only
depends on this contract.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..models import AuthSession


class AuthProvider(ABC):
    """
    Abstract auth service.

    Implementations raise AuthError for rejected credentials or provider
    failures.
    """

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        """
        Create an account.

        Returns the new session, or None when email verification is pending.
        """
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthSession:
        """Sign in with email and password."""
        pass

    @abstractmethod
    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        """Start an OAuth flow. Returns the provider URL to redirect to."""
        pass

    @abstractmethod
    async def exchange_oauth_code(self, code: str) -> AuthSession:
        """Complete an OAuth flow on the callback page."""
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """Revoke the current session."""
        pass

    @abstractmethod
    async def get_session(self) -> Optional[AuthSession]:
        """Return the provider's current session, if any."""
        pass
