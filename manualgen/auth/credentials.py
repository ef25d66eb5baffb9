"""
Credentials
===========
Plain credential container plus resolution from the environment.

Resolution order:
    1. Values given on the command line (``--login`` / ``--password``)
    2. ``MANUAL_USERNAME`` / ``MANUAL_PASSWORD``
    3. Nothing: the pipeline runs without the login phase

Credentials are never logged or printed.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

logger = logging.getLogger(__name__)

ENV_PREFIXES = ("MANUAL",)


@dataclass
class Credentials:
    """Plain credential container, resolved once and handed to the login phase."""
    username: str = ""
    password: str = ""
    login_url: str = ""
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.password)

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password=***, login_url={self.login_url!r})"


def resolve_credentials(
    username: Optional[str] = None,
    password: Optional[str] = None,
    login_url: Optional[str] = None,
    *,
    env_prefixes: Sequence[str] = ENV_PREFIXES,
) -> Optional[Credentials]:
    """Merge explicit values with ``{PREFIX}_USERNAME`` / ``_PASSWORD``.

    Returns:
        Complete ``Credentials``, or None when no usable pair exists
        (which means the login phase is skipped).
    """
    creds = Credentials(username=username or "", password=password or "", login_url=login_url or "")
    if creds.is_complete:
        return creds

    for prefix in env_prefixes:
        if not creds.username:
            creds.username = os.environ.get(f"{prefix}_USERNAME", "")
        if not creds.password:
            creds.password = os.environ.get(f"{prefix}_PASSWORD", "")
        if not creds.login_url:
            creds.login_url = os.environ.get(f"{prefix}_LOGIN_URL", "")

    if creds.is_complete:
        logger.info("[AUTH] Credentials resolved from environment")
        return creds
    if creds.username or creds.password:
        logger.warning("[AUTH] Incomplete credentials; login phase will be skipped")
    return None
