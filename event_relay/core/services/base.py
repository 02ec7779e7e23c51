"""Base service class for business logic."""

from __future__ import annotations

import logging

from event_relay.infra.logging import get_lazy_logger


class BaseService:
    """Base class for service objects.

    Loggers:
        - self.logger: Standard logger for INFO/WARNING/ERROR
        - self._lazy: Lazy logger for DEBUG (zero overhead when DEBUG disabled)
    """

    def __init__(self) -> None:
        class_name = self.__class__.__name__
        self.logger = logging.getLogger(class_name)
        self._lazy = get_lazy_logger(class_name)
