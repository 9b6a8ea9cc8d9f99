"""Storefront vertical configuration.

Re-exports the StorefrontConfig from the patterns module, read once from
the environment at import time.
"""

from patterns.domain_config import StorefrontConfig

# Process-wide configuration instance
config = StorefrontConfig.from_env()
