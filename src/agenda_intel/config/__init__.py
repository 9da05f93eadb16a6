"""Configuration for Agenda Intel."""

from agenda_intel.config.settings import AppSettings, get_settings, reset_settings

__all__ = ["AppSettings", "get_settings", "reset_settings"]
