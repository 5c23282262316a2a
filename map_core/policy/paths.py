"""Path matching rules shared by the policy engine and the admin surface."""

from typing import Iterable

EXEMPT_ROUTES = {"/login", "/signup", "/favicon.ico"}
EXEMPT_PREFIXES = ("/api/", "/auth/", "/static/", "/_next/", "/icons/")


def path_matches(path: str, entry: str) -> bool:
    """
    True if path is covered by allow-list entry.

    "/admin" covers "/admin" and "/admin/x" but not "/administration";
    "/" covers only "/".
    """
    return path == entry or (entry != "/" and path.startswith(entry + "/"))


def matches_any(path: str, entries: Iterable[str]) -> bool:
    return any(path_matches(path, e) for e in entries)


def is_exempt(path: str) -> bool:
    """Login/signup/auth-callback/static/API paths skip policy evaluation."""
    if path in EXEMPT_ROUTES or path in ("/api", "/auth"):
        return True
    if any(path.startswith(p) for p in EXEMPT_PREFIXES):
        return True
    return path.endswith(".svg")
