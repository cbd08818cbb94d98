from .proxy import (
    DEFAULT_CONTENT_TYPE,
    MANIFEST_CONTENT_TYPE,
    InboundRequest,
    ListenerState,
    ProxyAddress,
    ProxyConfig,
    UpstreamResult,
)

__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "MANIFEST_CONTENT_TYPE",
    "InboundRequest",
    "ListenerState",
    "ProxyAddress",
    "ProxyConfig",
    "UpstreamResult",
]
