"""Plugin settings."""
from .settings import CommandTemplates, SettingsError, TeamSettings

__all__ = ["CommandTemplates", "SettingsError", "TeamSettings"]
