"""Configuration module for the SCIM gateway endpoint."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
