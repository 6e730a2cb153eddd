"""Configuration module -- exports Settings and the YAML config file loader.

No settings instance is created at import time; the composition root
(``coursekb.main``) and the CLI construct one explicitly.
"""

from coursekb.config.loader import settings_from_config
from coursekb.config.settings import Settings

__all__ = ["Settings", "settings_from_config"]
