"""
Structured logging for NoCheat Bridge.

JSON logs with timestamp, entity_id, event_type and call diagnostics.
Use get_logger() in all bridge modules.
"""

from nocheat_bridge.nocheat_logging.logger import bind_entity, configure_structlog, get_logger

__all__ = ["bind_entity", "configure_structlog", "get_logger"]
