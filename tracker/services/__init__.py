"""Business logic services."""

from tracker.services.auth import AuthService
from tracker.services.group import GroupService
from tracker.services.product import ProductService
from tracker.services.setting import SettingService
from tracker.services.user import UserEditor, UserService

__all__ = [
    "AuthService",
    "GroupService",
    "ProductService",
    "SettingService",
    "UserEditor",
    "UserService",
]
