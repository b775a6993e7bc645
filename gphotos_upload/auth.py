"""OAuth 2.0 login for the Photos Library API, with token caching."""

from __future__ import annotations

import logging
import os

from google.auth.transport.requests import AuthorizedSession, Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/photoslibrary.appendonly"]

DEFAULT_CREDENTIALS_FILE = "credentials.json"
DEFAULT_TOKEN_FILE = "gphotos_token.json"


class AuthenticationError(RuntimeError):
    """No usable cached token and no client configuration to start a login."""


def _client_config(client_id: str, client_secret: str) -> dict:
    return {
        "installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": ["http://localhost"],
        }
    }


def _login_flow(
    credentials_file: str | None,
    client_id: str | None,
    client_secret: str | None,
) -> InstalledAppFlow:
    if client_id and client_secret:
        return InstalledAppFlow.from_client_config(_client_config(client_id, client_secret), SCOPES)
    if credentials_file and os.path.exists(credentials_file):
        return InstalledAppFlow.from_client_secrets_file(credentials_file, SCOPES)
    raise AuthenticationError(
        f"{credentials_file or DEFAULT_CREDENTIALS_FILE} not found and "
        "GPHOTOS_CLIENTID / GPHOTOS_CLIENTSECRET are not set. "
        "Download an OAuth client (Desktop app) from Google Cloud Console."
    )


def authenticate(
    credentials_file: str | None = DEFAULT_CREDENTIALS_FILE,
    token_file: str = DEFAULT_TOKEN_FILE,
    client_id: str | None = None,
    client_secret: str | None = None,
) -> Credentials:
    """Return valid user credentials for the Photos Library API.

    A cached token in *token_file* is reused and silently refreshed when it
    expires. Otherwise a browser consent flow is started, using either an
    explicit client id/secret pair or the client-secrets JSON in
    *credentials_file*. Fresh or refreshed tokens are written back to
    *token_file*.

    If you change SCOPES you must delete the token file and log in again.
    """
    creds = None
    if os.path.exists(token_file):
        creds = Credentials.from_authorized_user_file(token_file, SCOPES)
    if creds and creds.valid:
        return creds

    if creds and creds.expired and creds.refresh_token:
        logger.info("Refreshing cached Google Photos token.")
        creds.refresh(Request())
    else:
        flow = _login_flow(credentials_file, client_id, client_secret)
        logger.info("Opening browser for Google Photos consent...")
        creds = flow.run_local_server(port=0)

    with open(token_file, "w") as token:
        token.write(creds.to_json())
    logger.debug("Saved token to %s", token_file)
    return creds


def authorized_session(creds: Credentials) -> AuthorizedSession:
    """A requests session that adds (and refreshes) the bearer token on every call."""
    return AuthorizedSession(creds)
