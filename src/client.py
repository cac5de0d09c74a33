"""Gmail client factory for inbox triage.

Credentials come from the OAuth token file written by ``inbox-triage
authorize``. Expired access tokens are refreshed here once at startup and
written back; later refreshes happen transparently inside the authorized
HTTP transport.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Optional

import httplib2
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build

from adapters.file_state import atomic_write_text

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
]

LOGGER = logging.getLogger(__name__)


def load_client_config(credentials_path: str) -> dict:
    """Load an OAuth client secret file, either ``installed`` or ``web``."""

    with open(credentials_path, "r", encoding="utf-8") as handle:
        data = json.load(handle)
    return data.get("installed") or data.get("web") or data


def save_credentials(creds: Credentials, token_path: str) -> None:
    atomic_write_text(token_path, creds.to_json())


def load_credentials(token_path: str, credentials_path: Optional[str] = None) -> Credentials:
    """Load stored credentials, refreshing and persisting them when expired."""

    if not token_path or not os.path.exists(token_path):
        raise RuntimeError(f"Gmail token not found at {token_path}; run 'inbox-triage authorize' first")

    with open(token_path, "r", encoding="utf-8") as handle:
        info = json.load(handle)

    # Older token files may lack client fields; fill them from the client secret.
    if credentials_path and ("client_id" not in info or "client_secret" not in info):
        client = load_client_config(credentials_path)
        info.setdefault("client_id", client.get("client_id"))
        info.setdefault("client_secret", client.get("client_secret"))
        info.setdefault("token_uri", client.get("token_uri", "https://oauth2.googleapis.com/token"))

    creds = Credentials.from_authorized_user_info(info, SCOPES)
    if not creds.valid and creds.refresh_token:
        LOGGER.info("Refreshing Gmail access token")
        creds.refresh(Request())
        save_credentials(creds, token_path)
    return creds


def build_gmail_service(creds: Credentials, timeout_seconds: float = 30):
    """Create a Gmail API service whose every request is bounded by a timeout."""

    http = AuthorizedHttp(creds, http=httplib2.Http(timeout=timeout_seconds))
    LOGGER.info("Initializing Gmail client")
    return build("gmail", "v1", http=http, cache_discovery=False)
