from .cache import TTLCache
from .engine import Decision, PathPolicy, login_redirect
from .paths import is_exempt, path_matches

__all__ = ["Decision", "PathPolicy", "TTLCache", "is_exempt", "login_redirect", "path_matches"]
