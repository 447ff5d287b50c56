"""Session lifecycle, credentials and shared state."""

from .credentials import CookieBundle, load_cookie_bundle
from .session_manager import SessionManager
from .state import SessionState

__all__ = ["CookieBundle", "SessionManager", "SessionState", "load_cookie_bundle"]
