from event_relay.core.services.base import BaseService

__all__ = ["BaseService"]
