"""
AI provider access: quota-aware key pools and primary/fallback routing.
"""

from .key_manager import (
    GeminiTransport,
    GroqTransport,
    KeyManager,
    ProviderKeyRecord,
    ProviderRequest,
    ProviderTransport,
)
from .router import FallbackRouter

__all__ = [
    'FallbackRouter',
    'GeminiTransport',
    'GroqTransport',
    'KeyManager',
    'ProviderKeyRecord',
    'ProviderRequest',
    'ProviderTransport',
]
