"""
Compression Providers

- BaseCompressionProvider: capability set every backend implements
- TinyPNGProvider: two-phase shrink-then-resize
- CloudinaryProvider: single-phase signed upload with inline transformation
- build_providers: discovery from configuration
"""

from .base_provider import BaseCompressionProvider
from .cloudinary_provider import CloudinaryProvider
from .provider_registry import build_providers, known_providers, register_provider_class
from .tinypng_provider import TinyPNGProvider

__all__ = [
    "BaseCompressionProvider",
    "TinyPNGProvider",
    "CloudinaryProvider",
    "build_providers",
    "known_providers",
    "register_provider_class",
]
