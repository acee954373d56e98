"""SQLAlchemy models for the issue tracker accounts service."""

from tracker.models.activity import AuditLog, LoginFailure, ProfileActivity
from tracker.models.email_setting import EmailSetting
from tracker.models.group import Group, GroupGroupMap, UserGroupMap
from tracker.models.product import GroupControlMap, Product
from tracker.models.setting import ProfileSetting, Setting, SettingValue
from tracker.models.token import Token
from tracker.models.user import User

__all__ = [
    "User",
    "Group",
    "UserGroupMap",
    "GroupGroupMap",
    "Product",
    "GroupControlMap",
    "ProfileActivity",
    "AuditLog",
    "LoginFailure",
    "EmailSetting",
    "Setting",
    "SettingValue",
    "ProfileSetting",
    "Token",
]
