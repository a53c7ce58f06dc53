"""
Image Proxy.

An HTTP image proxy that serves images from an allowlisted domain, limits
each client to a sliding request window, and caches resized/recompressed
variants keyed by their transform parameters.

Usage:
    # Start server
    image-proxy serve

    # Fetch one image through the pipeline
    image-proxy fetch http://artsco202525.speedgabia.com/a.jpg --width 200 -o a.jpg

    # Show configuration
    image-proxy info
"""

__version__ = "0.1.0"

from .handler import ProxyHandler, ProxyRequest, ProxyResponse
from .server import create_app

__all__ = [
    "ProxyHandler",
    "ProxyRequest",
    "ProxyResponse",
    "create_app",
]
