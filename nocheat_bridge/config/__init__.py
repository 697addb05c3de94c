"""
Configuration management for NoCheat Bridge.

Loads and validates settings from environment variables and an optional .env
file. Exposes a single source of truth for engine location, model path and
wire options.
"""

from nocheat_bridge.config.settings import BridgeSettings, get_settings  # noqa: F401

__all__ = ["BridgeSettings", "get_settings"]
