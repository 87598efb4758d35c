"""Shared core for the ArcGIS API key manager.

This package defines everything both sides of the UI boundary rely on:
- models: Credential, KeySlot, Environment, RestError and operation results
- client: RestClient, the listing/detail/mutation surface over a RestTransport
- protocol: the closed-tag ProtocolEnvelope codec between UI and host
- environments / adapters: the environment registry and its storage seam
"""

from .adapters import AuthAdapter, InMemoryStorage, StorageAdapter
from .capabilities import CapabilityDetector
from .client import RestClient
from .config import ClientSettings, build_transport, load_environments
from .environments import EnvironmentManager
from .errors import PortalError, RestClientError, map_rest_error
from .logic import (
    ExpirationCategory,
    ReferrerAnnotation,
    analyze_referrers,
    categorize_expiration,
    filter_credentials,
    sort_credentials,
)
from .models import (
    AuthToken,
    Capabilities,
    Credential,
    Environment,
    KeySlot,
    MutationResult,
    RestError,
)
from .mutation import DirectKeyMutation, KeyMutationStrategy, RegisteredAppKeyMutation
from .normalizer import NON_EXPIRING_DATE_ISO, dedupe_credentials, normalize
from .pagination import PaginatedFetcher, RequestTemplate
from .protocol import ProtocolEnvelope, ProtocolError, deserialize, serialize
from .result import Err, Ok, capture
from .schemas import UI_PAYLOAD_SCHEMAS, KeyActionPayload
from .transport import HttpxTransport, RestRequest, RestTransport
from .validation import ResponseShapeValidator
from .wrappers.logging_wrapper import LoggingTransport
from .wrappers.readonly_wrapper import ReadOnlyTransport

__all__ = [
    "AuthAdapter",
    "InMemoryStorage",
    "StorageAdapter",
    "CapabilityDetector",
    "RestClient",
    "ClientSettings",
    "build_transport",
    "load_environments",
    "EnvironmentManager",
    "PortalError",
    "RestClientError",
    "map_rest_error",
    "ExpirationCategory",
    "ReferrerAnnotation",
    "analyze_referrers",
    "categorize_expiration",
    "filter_credentials",
    "sort_credentials",
    "AuthToken",
    "Capabilities",
    "Credential",
    "Environment",
    "KeySlot",
    "MutationResult",
    "RestError",
    "DirectKeyMutation",
    "KeyMutationStrategy",
    "RegisteredAppKeyMutation",
    "NON_EXPIRING_DATE_ISO",
    "dedupe_credentials",
    "normalize",
    "PaginatedFetcher",
    "RequestTemplate",
    "ProtocolEnvelope",
    "ProtocolError",
    "deserialize",
    "serialize",
    "Err",
    "Ok",
    "capture",
    "UI_PAYLOAD_SCHEMAS",
    "KeyActionPayload",
    "HttpxTransport",
    "RestRequest",
    "RestTransport",
    "ResponseShapeValidator",
    "LoggingTransport",
    "ReadOnlyTransport",
]
