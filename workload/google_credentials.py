"""Helpers for validating Google credential files and building credentials."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, Mapping, Sequence

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import credentials as user_credentials
from google.oauth2 import service_account

__all__ = [
    "AUTHORIZED_USER_FIELDS",
    "CredentialsFileInvalidError",
    "SERVICE_ACCOUNT_FIELDS",
    "TRANSPORT_ERRORS",
    "build_credentials",
    "load_credential_data",
]


class CredentialsFileInvalidError(Exception):
    """Raised when a credential JSON file is missing required data."""


# Failures raised below the HTTP status layer while a request is in flight.
TRANSPORT_ERRORS = (OSError, httplib2.HttpLib2Error, GoogleAuthError)


SERVICE_ACCOUNT_FIELDS: Iterable[str] = (
    "type",
    "project_id",
    "private_key_id",
    "private_key",
    "client_email",
    "client_id",
    "token_uri",
)

# Tokens produced by an earlier consent flow; refreshing them needs no browser.
AUTHORIZED_USER_FIELDS: Iterable[str] = (
    "type",
    "client_id",
    "client_secret",
    "refresh_token",
)


def _normalise_private_key(key: str) -> str:
    key = key.replace("\r\n", "\n").replace("\r", "\n")
    key = key.replace("\\n", "\n")
    if not key.endswith("\n"):
        key += "\n"
    return key


def _load_json(path: Path) -> Mapping[str, object]:
    try:
        with path.open("r", encoding="utf-8-sig") as handle:
            raw = handle.read()
    except OSError as exc:
        raise CredentialsFileInvalidError(f"Credential file could not be read: {exc}") from exc

    payload_text = raw.strip()
    if not payload_text:
        raise CredentialsFileInvalidError("Credential file is empty.")

    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError as exc:
        raise CredentialsFileInvalidError(f"Credential file is not valid JSON: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise CredentialsFileInvalidError("Credential file must contain a JSON object.")
    return payload


def _validate_payload(payload: Mapping[str, object]) -> Dict[str, object]:
    data: Dict[str, object] = dict(payload)
    kind = data.get("type")
    if kind == "service_account":
        required = SERVICE_ACCOUNT_FIELDS
    elif kind == "authorized_user":
        required = AUTHORIZED_USER_FIELDS
    else:
        raise CredentialsFileInvalidError(f"Unsupported credential type: {kind!r}")

    missing = [
        field for field in required if not isinstance(data.get(field), str) or not str(data.get(field)).strip()
    ]
    if missing:
        ordered = ", ".join(sorted(dict.fromkeys(missing)))
        raise CredentialsFileInvalidError(f"Credential file is missing fields: {ordered}")

    if kind == "service_account":
        data["private_key"] = _normalise_private_key(str(data["private_key"]))
    return data


def load_credential_data(path: Path) -> Dict[str, object]:
    """Return validated credential data without modifying ``path``."""

    return _validate_payload(_load_json(path))


def build_credentials(path: Path, scopes: Sequence[str]):
    """Return google-auth credentials for the file at ``path``."""

    payload = load_credential_data(path)
    if payload["type"] == "service_account":
        return service_account.Credentials.from_service_account_info(payload, scopes=list(scopes))
    return user_credentials.Credentials.from_authorized_user_info(payload, scopes=list(scopes))
