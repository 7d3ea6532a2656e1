"""
Finicity (Mastercard Open Banking US) API client
with partner token caching and typed payload models.
"""

from .client import FinicityClient
from .config import FinicityConfig
from .errors import ApiError, AuthError
from .models import *

__all__ = ["FinicityClient", "FinicityConfig", "ApiError", "AuthError"]
