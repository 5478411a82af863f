"""
This module contains the TokenManager class, which obtains and caches the
bearer token used for every authenticated Port API call.
"""
import logging
import time

import requests

from .exceptions import AuthenticationError

# Tokens with less validity than this are renewed before use
REFRESH_MARGIN_SECONDS = 3 * 60


class TokenManager:
    """Acquires a Port access token and renews it shortly before it expires."""

    # pylint: disable=too-many-arguments
    def __init__(self, api_url, client_id, client_secret, timeout=30, clock=time.monotonic):
        self.logger = logging.getLogger(__name__)
        self._api_url = api_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout
        self._clock = clock
        self._token = None
        self._expires_at = 0.0

    def needs_refresh(self, now):
        """True when no token is cached or it expires within the refresh margin."""
        return self._token is None or self._expires_at - now < REFRESH_MARGIN_SECONDS

    def get_token(self):
        """Returns a valid access token, authenticating only when required."""
        if self.needs_refresh(self._clock()):
            self._authenticate()
        return self._token

    def invalidate(self):
        """Drops the cached token so the next call re-authenticates."""
        self._token = None
        self._expires_at = 0.0

    def _authenticate(self):
        self.logger.info("Requesting new Port API access token.")
        credentials = {
            "clientId": self._client_id,
            "clientSecret": self._client_secret,
        }
        try:
            response = requests.post(
                f"{self._api_url}/v1/auth/access_token",
                json=credentials,
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as e:
            self.logger.error("Failed to get Port access token: %s", e)
            raise AuthenticationError(f"Authentication failed: {e}") from e
        except ValueError as e:
            raise AuthenticationError(
                "Authentication failed: response is not valid JSON"
            ) from e

        token = payload.get("accessToken") if isinstance(payload, dict) else None
        expires_in = payload.get("expiresIn") if isinstance(payload, dict) else None
        if not token or not isinstance(expires_in, (int, float)) or isinstance(expires_in, bool):
            raise AuthenticationError(
                "Authentication failed: response is missing accessToken or expiresIn"
            )

        self._token = token
        self._expires_at = self._clock() + expires_in
        self.logger.info("Authentication successful, token valid for %ss.", expires_in)
