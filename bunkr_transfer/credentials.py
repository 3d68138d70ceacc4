import os
from typing import Optional

import keyring
from keyring.errors import KeyringError

from .types import AuthError


KEYRING_SERVICE = "bunkr_client"
KEYRING_ENTRY = "api_token"
TOKEN_ENV = "BUNKR_TOKEN"


def save_token(token: str) -> None:
    try:
        keyring.set_password(KEYRING_SERVICE, KEYRING_ENTRY, token)
    except KeyringError as exc:
        raise AuthError(f"Could not save token: {exc}") from exc


def get_token(cli_token: Optional[str] = None) -> str:
    if cli_token:
        return cli_token
    env_token = os.environ.get(TOKEN_ENV)
    if env_token:
        return env_token
    try:
        stored = keyring.get_password(KEYRING_SERVICE, KEYRING_ENTRY)
    except KeyringError:
        stored = None
    if not stored:
        raise AuthError("No token provided and none saved. Use --token or save one with save-token.")
    return stored
