"""Configuration models and loaders for the cube binder."""

from .models import BinderConfig
from .settings import load_config, load_config_with_fallback

__all__ = ["BinderConfig", "load_config", "load_config_with_fallback"]
