"""Public SDK exports for the companion LLM service."""

from .bridge import AbortHandle, ChatBridge
from .catalog import CapabilityCatalog, get_default_catalog
from .client import CompanionClient
from .config import FrozenSDKSettings, SDKSettings, get_base_url, get_sdk_config, set_base_url, settings
from .errors import (
    AbortError,
    CompanionError,
    CompanionServerTimeoutError,
    CompanionServiceError,
    CompanionTimeoutError,
    ProtocolError,
    ProviderError,
    TransportError,
    UnsupportedOperationError,
    ValidationError,
)
from .keysync import KeySyncGateway
from .overlay import OverlayStore, build_overlay_for_models
from .resolver import CapabilityResolver, resolve_capabilities
from .schemas import ModelCapabilities, ResolvedCapabilities
from .stream import StreamSession
from .supervisor import ServiceSupervisor

__version__ = "0.1.0"
