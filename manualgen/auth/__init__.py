"""
Authentication: credential resolution and the Playwright login flow.
"""

from .credentials import Credentials, resolve_credentials
from .login_manager import LoginConfig, LoginManager

__all__ = [
    'Credentials',
    'LoginConfig',
    'LoginManager',
    'resolve_credentials',
]
