"""Custom exceptions for the map core"""

from typing import Optional


class MapError(Exception):
    """Base exception for map-intelligente"""
    pass


class ConfigError(MapError):
    """Configuration error"""
    pass


class AuthNotConfiguredError(MapError):
    """No signing secret or login password is configured"""
    pass


class AccountExistsError(MapError):
    """Login name is already taken"""
    pass


class StoreError(MapError):
    """Account/config store unreachable or returned an error"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ShapeNotFoundError(MapError):
    """Collapse/expand target does not exist"""
    pass


class WrongShapeTypeError(MapError):
    """Collapse/expand target is not a collapsible group"""

    def __init__(self, shape_id: str, shape_type: str):
        self.shape_id = shape_id
        self.shape_type = shape_type
        super().__init__(f"Shape {shape_id} has type {shape_type!r}, expected a group")
