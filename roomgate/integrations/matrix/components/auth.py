"""
Matrix Authentication Handler

Builds clients from credentials and logs in with a password.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from nio import AsyncClient, LoginResponse

from ....config import Credentials
from ....exceptions import MatrixAuthenticationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    """Session details returned by a successful login."""
    access_token: str
    user_id: str
    device_id: str


def create_client(credentials: Credentials, device_id: Optional[str] = None) -> AsyncClient:
    """Create an unauthenticated client for the given credentials."""
    return AsyncClient(credentials.homeserver_url, credentials.username, device_id=device_id)


class MatrixAuthHandler:
    """Handles Matrix password login."""

    def __init__(self, credentials: Credentials, device_name: str = "roomgate"):
        self.credentials = credentials
        self.device_name = device_name

    async def login_with_retry(self, client: AsyncClient, max_attempts: int = 3) -> LoginResult:
        """Attempt login, backing off when the homeserver rate limits us."""
        last_error: Optional[Exception] = None

        for attempt in range(max_attempts):
            try:
                logger.info(f"MatrixAuthHandler: Login attempt {attempt + 1} for {self.credentials.username}")
                response = await client.login(self.credentials.password, device_name=self.device_name)
            except Exception as login_error:
                last_error = login_error
                error_str = str(login_error)

                if '429' in error_str or 'rate' in error_str.lower():
                    delay = min(60, 2 ** attempt * 5)
                    logger.warning(
                        f"MatrixAuthHandler: Rate limited on attempt {attempt + 1}. "
                        f"Waiting {delay}s before retry..."
                    )
                    if attempt < max_attempts - 1:
                        await asyncio.sleep(delay)
                    continue

                logger.error(f"MatrixAuthHandler: Login attempt {attempt + 1} failed: {login_error}")
                raise

            if isinstance(response, LoginResponse):
                logger.info(f"MatrixAuthHandler: Login successful as {response.user_id}")
                return LoginResult(
                    access_token=response.access_token,
                    user_id=response.user_id,
                    device_id=response.device_id,
                )

            detail = getattr(response, "message", None) or str(response)
            logger.error(f"MatrixAuthHandler: Login failed: {detail}")
            raise MatrixAuthenticationError(f"Login failed for {self.credentials.username}: {detail}")

        raise MatrixAuthenticationError(
            f"Login failed for {self.credentials.username} after {max_attempts} attempts: {last_error}"
        )


async def get_credentials_with_password(credentials: Credentials, device_name: str = "roomgate") -> LoginResult:
    """Log in once with a throwaway client and return the session details."""
    client = create_client(credentials)
    try:
        return await MatrixAuthHandler(credentials, device_name).login_with_retry(client)
    finally:
        await client.close()
