"""Credentials for exploring applications that sit behind a login.

An :class:`AuthConfig` is applied to the Playwright browser context before
the start URL is opened: headers and storage state become context options,
cookies are added to the context right after it is created.

Example usage:

    from explorer.auth import AuthConfig

    # Session saved from a manual login
    auth = AuthConfig(storage_state="./auth_state.json")

    # API-token style apps
    auth = AuthConfig(headers={"Authorization": "Bearer xyz"})

    # A single session cookie
    auth = AuthConfig(
        cookies=[{"name": "sid", "value": "abc123", "domain": ".example.com", "path": "/"}]
    )
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

LOGGER = logging.getLogger(__name__)

ENV_STORAGE_STATE = "EXPLORER_AUTH_STORAGE_STATE"
ENV_COOKIES_FILE = "EXPLORER_AUTH_COOKIES_FILE"


class AuthConfigError(ValueError):
    """Raised when auth settings point at missing or invalid data."""


def _read_json(path: Path, what: str) -> Any:
    if not path.is_file():
        raise AuthConfigError(f"{what} not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise AuthConfigError(f"{what} contains invalid JSON: {path}") from exc


def _read_json_object(path: Path, what: str) -> Dict[str, Any]:
    data = _read_json(path, what)
    if not isinstance(data, dict):
        raise AuthConfigError(f"{what} must be a JSON object: {path}")
    return data


@dataclass
class AuthConfig:
    """Authentication settings for the exploration browser.

    All fields are optional and can be combined.

    Attributes:
        cookies: Cookie dicts as accepted by ``BrowserContext.add_cookies``
            ('name', 'value' and either 'url' or 'domain' + 'path').
        headers: Extra HTTP headers sent with every request.
        storage_state: Path to a Playwright storage state JSON file.
        storage_state_data: Inline storage state, used instead of the file.
    """

    cookies: Optional[List[Dict[str, Any]]] = None
    headers: Optional[Dict[str, str]] = None
    storage_state: Optional[str] = None
    storage_state_data: Optional[Dict[str, Any]] = None

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))

    def resolved_storage_state(self) -> Optional[Dict[str, Any]]:
        """Storage state as a dict, read from disk when given as a path.

        Raises:
            AuthConfigError: If the file is missing or not a JSON object.
        """
        if self.storage_state_data:
            return self.storage_state_data
        if not self.storage_state:
            return None
        path = Path(self.storage_state).expanduser()
        state = _read_json_object(path, "Storage state file")
        LOGGER.info("Loaded storage state from %s", path)
        return state


def build_context_options(auth: Optional[AuthConfig] = None) -> Dict[str, Any]:
    """Keyword arguments for ``Browser.new_context`` derived from ``auth``."""
    options: Dict[str, Any] = {}
    if auth is None or auth.is_empty:
        return options

    if auth.headers:
        options["extra_http_headers"] = dict(auth.headers)
        LOGGER.info("Auth: sending %d extra header(s)", len(auth.headers))

    state = auth.resolved_storage_state()
    if state:
        options["storage_state"] = state

    return options


def load_auth_from_env() -> Optional[AuthConfig]:
    """AuthConfig from EXPLORER_AUTH_* variables, or None when none is set.

    A cookies file that does not exist is logged and skipped so a stale
    variable does not block unauthenticated runs.
    """
    storage_state = os.environ.get(ENV_STORAGE_STATE) or None
    cookies_file = os.environ.get(ENV_COOKIES_FILE) or None
    if storage_state is None and cookies_file is None:
        return None

    cookies = None
    if cookies_file:
        path = Path(cookies_file).expanduser()
        if path.is_file():
            cookies = _read_json(path, "Cookies file")
            LOGGER.info("Loaded %d cookie(s) from %s", len(cookies), path)
        else:
            LOGGER.warning("%s points at a missing file: %s", ENV_COOKIES_FILE, path)

    return AuthConfig(storage_state=storage_state, cookies=cookies)


def load_auth_from_file(path: str) -> AuthConfig:
    """AuthConfig from a JSON object with optional cookies/headers/storage_state.

    Raises:
        AuthConfigError: If the file is missing or is not a JSON object.
    """
    data = _read_json_object(Path(path).expanduser(), "Auth config file")
    return AuthConfig(
        cookies=data.get("cookies"),
        headers=data.get("headers"),
        storage_state=data.get("storage_state"),
    )
