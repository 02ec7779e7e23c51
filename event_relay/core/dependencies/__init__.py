"""FastAPI dependencies shared by feature routers."""

from event_relay.core.dependencies.database import get_db_session
from event_relay.core.dependencies.tenant import TenantIdDep, get_tenant_id

__all__ = ["TenantIdDep", "get_db_session", "get_tenant_id"]
