"""Dual-strategy post collection engine.

Collects every post authored by an account through a paginated structured API,
escalating to a scrolled, rendered search view when the API stalls, throttles
or fails, and merges both into one deduplicated record set.
"""

from .config import Settings, get_settings, load_settings
from .errors import (
    AuthExpiredError,
    CollectorError,
    ConfigError,
    CredentialsMissingError,
    NotFoundError,
    RateLimitError,
    RemoteError,
    ResourceError,
    StateTransitionError,
    TransportError,
    ValidationError,
)
from .merge import IdentityMap
from .models import CollectionReport, Record, SessionStats
from .orchestrator import CollectionOrchestrator, CollectionState, collect_account

__version__ = "0.1.0"

__all__ = [
    "AuthExpiredError",
    "CollectionOrchestrator",
    "CollectionReport",
    "CollectionState",
    "CollectorError",
    "ConfigError",
    "CredentialsMissingError",
    "IdentityMap",
    "NotFoundError",
    "RateLimitError",
    "Record",
    "RemoteError",
    "ResourceError",
    "SessionStats",
    "Settings",
    "StateTransitionError",
    "TransportError",
    "ValidationError",
    "collect_account",
    "get_settings",
    "load_settings",
]
