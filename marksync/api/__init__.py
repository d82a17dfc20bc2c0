"""
HTTP control API.
"""

# Service references (set by the app at startup)
_sync_service = None
_auth_guard = None
_dispatcher = None


def set_services(sync_service=None, auth_guard=None, dispatcher=None):
    """Set service references for route handlers."""
    global _sync_service, _auth_guard, _dispatcher
    _sync_service = sync_service
    _auth_guard = auth_guard
    _dispatcher = dispatcher


def get_sync_service():
    """Get folder sync service."""
    return _sync_service


def get_auth_guard():
    """Get GitHub auth guard."""
    return _auth_guard


def get_dispatcher():
    """Get change event dispatcher."""
    return _dispatcher
