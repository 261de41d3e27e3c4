"""
Core infrastructure package for the Tender Desk service.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL connectivity via asyncpg
- Firebase identity verification via google-auth
- Cloud Storage access via google-cloud-storage
- Workflow webhook calls via httpx
- FastAPI dependency injection utilities

Re-exports the commonly used components so callers can write:

    from tenderdesk.core import get_settings, DBSessionDep, SettingsDep
"""

from tenderdesk.core.config import ConfigurationError, Settings, get_settings
from tenderdesk.core.database import close_db, get_db_pool, init_db
from tenderdesk.core.dependencies import (
    BearerUserDep,
    CurrentUserDep,
    DBSessionDep,
    HttpClientDep,
    ObjectStoreDep,
    SettingsDep,
    get_current_user,
    get_db_session,
    get_http_client,
    get_object_store,
    get_settings_dependency,
    require_bearer_user,
)

__all__ = [
    # Configuration
    'ConfigurationError',
    'Settings',
    'get_settings',
    # Database lifecycle
    'init_db',
    'close_db',
    'get_db_pool',
    # Dependencies
    'get_db_session',
    'get_settings_dependency',
    'get_http_client',
    'get_object_store',
    'get_current_user',
    'require_bearer_user',
    'SettingsDep',
    'DBSessionDep',
    'HttpClientDep',
    'ObjectStoreDep',
    'BearerUserDep',
    'CurrentUserDep',
]
