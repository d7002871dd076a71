"""JSON logging for the chat server.

Usage:
    from pairchat.utils.logging_config import configure_logging

    configure_logging()
    logging.getLogger(__name__).info("Message sent", extra={"room_id": room_id})
"""
import logging
import os
import sys
from typing import Any, Dict

from pythonjsonlogger import jsonlogger


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class ChatJsonFormatter(jsonlogger.JsonFormatter):

    def __init__(self, service_name: str = "pairchat", *args, **kwargs) -> None:
        self.service_name = service_name
        super().__init__(*args, **kwargs)

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = self.formatTime(record, "%Y-%m-%dT%H:%M:%S")
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = self.service_name


_configured = False


def configure_logging(level: str = LOG_LEVEL) -> logging.Logger:
    global _configured
    root = logging.getLogger()
    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ChatJsonFormatter())
        root.addHandler(handler)
        _configured = True
    root.setLevel(level.upper())
    return root
