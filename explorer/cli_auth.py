"""Turn authentication flags into an AuthConfig for the explore command."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from .auth import AuthConfig, AuthConfigError, load_auth_from_env, load_auth_from_file


def _parse_cookies(raw: str) -> List[Dict[str, Any]]:
    """Accept inline JSON (a cookie or a list of cookies) or a JSON file path."""
    if raw.lstrip().startswith(("[", "{")):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise AuthConfigError(f"Invalid --cookies JSON: {exc}") from exc
    elif Path(raw).expanduser().is_file():
        data = json.loads(Path(raw).expanduser().read_text(encoding="utf-8"))
    else:
        raise AuthConfigError(f"--cookies is neither JSON nor an existing file: {raw}")
    return data if isinstance(data, list) else [data]


def _parse_headers(raw_headers: Sequence[str]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for raw in raw_headers:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            logging.warning("Ignoring --header %r (expected 'Name: value')", raw)
            continue
        headers[name.strip()] = value.strip()
    return headers


def build_cli_auth(
    args: argparse.Namespace,
    auth_loader: Callable[[], Optional[AuthConfig]] = load_auth_from_env,
) -> Optional[AuthConfig]:
    """Resolve auth settings from flags.

    ``--auth-file`` replaces every other flag. Otherwise ``--cookies``,
    ``--header`` and ``--storage-state`` combine; with none of them given
    the EXPLORER_AUTH_* environment is consulted through ``auth_loader``.

    Raises:
        AuthConfigError: If --cookies or --auth-file cannot be used.
    """
    if getattr(args, "auth_file", None):
        return load_auth_from_file(args.auth_file)

    raw_cookies = getattr(args, "cookies", None)
    cookies = _parse_cookies(raw_cookies) if raw_cookies else None
    headers = _parse_headers(getattr(args, "header", None) or []) or None
    storage_state = getattr(args, "storage_state", None)

    if cookies or headers or storage_state:
        return AuthConfig(cookies=cookies, headers=headers, storage_state=storage_state)
    return auth_loader()


def add_auth_args(parser: argparse.ArgumentParser) -> None:
    """Register the authentication flag group on ``parser``."""
    group = parser.add_argument_group(
        "authentication",
        "Explore pages behind a login. Without these flags the "
        "EXPLORER_AUTH_* environment variables are used.",
    )
    group.add_argument(
        "--auth-file",
        metavar="PATH",
        help="JSON object with optional cookies, headers and storage_state keys; "
        "overrides the other authentication flags",
    )
    group.add_argument(
        "--cookies",
        metavar="JSON|PATH",
        help="Cookies to inject before the first page load, inline or from a file",
    )
    group.add_argument(
        "--header",
        action="append",
        metavar="'NAME: VALUE'",
        help="Extra HTTP header sent with every request (repeatable)",
    )
    group.add_argument(
        "--storage-state",
        metavar="PATH",
        help="Playwright storage state saved from a logged-in session",
    )
