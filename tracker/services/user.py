"""User service for account lookup, lifecycle and notification settings."""

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Union

import redis.asyncio as redis
from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from tracker.config import settings
from tracker.constants import (
    BOUNCE_MESSAGE_FIELD,
    EVT_CC,
    EVT_CHANGED_BY_ME,
    FIELD_BUG_GROUP,
    FIELD_CREATION_TS,
    GLOBAL_EVENTS,
    GRANT_DIRECT,
    GRANT_REGEXP,
    INACTIVE_ACCOUNT_REASON,
    MAX_LOGIN_LENGTH,
    NEG_EVENTS,
    NO_DB_LOGIN_PASSWORD,
    POS_EVENTS,
    REL_ANY,
    REL_GLOBAL_WATCHER,
    REL_REPORTER,
    RELATIONSHIPS,
    TOKEN_EMAIL_NEW,
    TOKEN_EMAIL_OLD,
)
from tracker.core.exceptions import CodeError, NotFoundError, UserError
from tracker.core.permissions import UserPermissions, login_matches_regexp
from tracker.core.security import assert_password_is_secure, hash_password
from tracker.middleware.audit_logger import log_data_modification
from tracker.models.activity import AuditLog, LoginFailure, ProfileActivity
from tracker.models.email_setting import EmailSetting
from tracker.models.group import Group, UserGroupMap
from tracker.models.setting import ProfileSetting
from tracker.models.token import Token
from tracker.models.user import User
from tracker.redis import GroupCache, SessionStore
from tracker.schemas.user import UserCreate, UserUpdate
from tracker.utils.html_sanitizer import sanitize_html
from tracker.utils.validators import (
    diff_lists,
    extract_nicks,
    is_numeric_id,
    trim,
    validate_regexp,
)

# Columns whose changes are reported by UserEditor.update()
UPDATE_COLUMNS = (
    "login_name",
    "realname",
    "nickname",
    "cryptpassword",
    "disabledtext",
    "disable_mail",
    "is_enabled",
    "extern_id",
    "password_change_required",
    "password_change_reason",
    "mfa",
    "mfa_required_date",
    "bounce_count",
)

# Changes to these columns end the user's sessions.
LOGOUT_COLUMNS = ("login_name", "disabledtext", "cryptpassword")

REDACTED = "********"

GroupRef = Union[int, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserService:
    """
    Service for user operations.

    `actor` is the permission view of the user performing the operation;
    it decides bless rights, visibility and who is recorded in the
    activity log. Without one, the operation runs on behalf of the user
    being changed (e.g. self-registration).
    """

    def __init__(
        self,
        db: AsyncSession,
        redis_client: Optional[redis.Redis] = None,
        actor: Optional[UserPermissions] = None,
    ):
        self.db = db
        self.redis = redis_client
        self.cache = GroupCache(redis_client)
        self.actor = actor

    @property
    def actor_id(self) -> int:
        return self.actor.user_id if self.actor is not None else 0

    # Lookups

    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_login(self, login: str) -> Optional[User]:
        """Get user by login name, ignoring case."""
        result = await self.db.execute(
            select(User).where(func.lower(User.login_name) == trim(login).lower())
        )
        return result.scalar_one_or_none()

    async def get_or_404(self, user_id: int) -> User:
        """Get user by ID or raise NotFoundError."""
        user = await self.get_by_id(user_id)
        if not user:
            raise NotFoundError(resource="User")
        return user

    async def get_visible_or_404(self, user_id: int) -> User:
        """Get a user the actor is allowed to see; others look missing."""
        user = await self.get_or_404(user_id)
        if self.actor is not None and not await self.actor.can_see_user(user):
            raise NotFoundError(resource="User")
        return user

    async def login_to_id(self, login: str, throw_error: bool = False) -> int:
        """
        Resolve a login name to a user id.

        Returns:
            The user id, or 0 when there is no such user

        Raises:
            UserError: `invalid_username` if `throw_error` and no user matches
        """
        result = await self.db.execute(
            select(User.id).where(func.lower(User.login_name) == trim(login).lower())
        )
        user_id = result.scalar_one_or_none()
        if user_id:
            return user_id
        if throw_error:
            raise UserError("invalid_username", name=login)
        return 0

    async def user_id_to_login(self, user_id: Any) -> str:
        """Resolve a user id to a login name; '' if unknown."""
        if not is_numeric_id(user_id) or not int(user_id):
            return ""
        result = await self.db.execute(
            select(User.login_name).where(User.id == int(user_id))
        )
        return result.scalar_one_or_none() or ""

    async def is_available_username(
        self, login: str, old_login: Optional[str] = None
    ) -> bool:
        """
        Check whether a login can be taken.

        A login is unavailable when an account has it, or when it is part of
        an email change still waiting for confirmation. The user making that
        change (`old_login`) may still take it.
        """
        if await self.login_to_id(login):
            return False

        result = await self.db.execute(
            select(Token.tokentype, Token.eventdata).where(
                Token.tokentype.in_((TOKEN_EMAIL_OLD, TOKEN_EMAIL_NEW)),
                Token.eventdata.is_not(None),
            )
        )
        for tokentype, eventdata in result.all():
            old, _, new = eventdata.partition(":")
            pending = old if tokentype == TOKEN_EMAIL_OLD else new
            if pending != login:
                continue
            return bool(old_login) and eventdata == f"{old_login}:{login}"
        return True

    async def match(
        self,
        text: str,
        limit: Optional[int] = None,
        exclude_disabled: bool = False,
    ) -> list[User]:
        """
        Find users for a free-text user field.

        `*` wildcards search login, real name and nickname; otherwise the
        text is tried as an exact login, then (3 characters or more) as a
        substring. Wildcard and substring searches need a logged-in actor
        and only return users the actor may see.
        """
        text = trim(text)
        if not text:
            return []
        limit = limit if limit is not None else settings.user_match_limit
        logged_in = bool(self.actor_id) or (self.actor is not None and self.actor.is_super_user)

        users: list[User] = []
        if "*" in text:
            if logged_in:
                pattern = text.replace("*", "%")
                users = await self._search(
                    or_(
                        User.login_name.ilike(pattern),
                        User.realname.ilike(pattern),
                        User.nickname.ilike(pattern),
                    ),
                    limit,
                    exclude_disabled,
                )
        else:
            # Exact matches find disabled users too.
            user = await self.get_by_login(text)
            if user is not None:
                users = [user]

        if not users and len(text) >= 3 and logged_in:
            users = await self._search(
                or_(
                    User.login_name.icontains(text, autoescape=True),
                    User.realname.icontains(text, autoescape=True),
                    User.nickname.icontains(text, autoescape=True),
                ),
                limit,
                exclude_disabled,
            )
        return users

    async def _search(self, condition, limit: int, exclude_disabled: bool) -> list[User]:
        query = select(User).where(condition)
        visible = await self._visible_user_filter()
        if visible is not None:
            query = query.where(visible)
        if exclude_disabled:
            query = query.where(User.is_enabled.is_(True))
        query = query.order_by(User.login_name)
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _visible_user_filter(self):
        """SQL condition limiting users to those the actor may see, if any applies."""
        if not settings.usevisibilitygroups or self.actor is None or self.actor.is_super_user:
            return None
        visible = await self.actor.visible_groups_inherited() or [-1]
        members = select(UserGroupMap.user_id).where(
            UserGroupMap.isbless.is_(False),
            UserGroupMap.group_id.in_(visible),
        )
        return or_(User.id.in_(members), User.id == self.actor_id)

    async def get_userlist(self) -> list[dict[str, Any]]:
        """Enabled users sorted by identity, flagged with whether the actor may see them."""
        result = await self.db.execute(
            select(User.id, User.login_name, User.realname).where(User.is_enabled.is_(True))
        )
        rows = result.all()

        visible_ids: Optional[set[int]] = None
        visible = await self._visible_user_filter()
        if visible is not None:
            visible_result = await self.db.execute(select(User.id).where(visible))
            visible_ids = set(visible_result.scalars().all())

        userlist = [
            {
                "login": login,
                "identity": f"{realname} <{login}>" if realname else login,
                "visible": visible_ids is None or user_id in visible_ids,
            }
            for user_id, login, realname in rows
        ]
        userlist.sort(key=lambda entry: entry["identity"].lower())
        return userlist

    async def list_users(
        self,
        matchvalue: str = "login_name",
        matchstr: Optional[str] = None,
        matchtype: str = "substr",
        group_id: Optional[int] = None,
        is_enabled: Optional[bool] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[User], int]:
        """
        List users for account administration.

        Returns:
            Tuple of (users list, total count)
        """
        filters = []

        if matchstr:
            if matchvalue == "userid":
                if not is_numeric_id(matchstr):
                    raise UserError("illegal_user_id", userid=matchstr)
                filters.append(User.id == int(matchstr))
            else:
                column = User.realname if matchvalue == "realname" else User.login_name
                if matchtype == "substr":
                    filters.append(column.icontains(matchstr, autoescape=True))
                elif matchtype == "exact":
                    filters.append(func.lower(column) == matchstr.lower())
                elif matchtype in ("regexp", "notregexp"):
                    if not validate_regexp(matchstr):
                        raise UserError("invalid_regexp", regexp=matchstr)
                    condition = column.regexp_match(f"(?i){matchstr}")
                    filters.append(condition if matchtype == "regexp" else ~condition)
                else:
                    raise CodeError("invalid_matchtype", matchtype=matchtype)

        if group_id is not None:
            filters.append(
                User.id.in_(
                    select(UserGroupMap.user_id).where(
                        UserGroupMap.group_id == group_id,
                        UserGroupMap.isbless.is_(False),
                    )
                )
            )
        if is_enabled is not None:
            filters.append(User.is_enabled.is_(is_enabled))

        visible = await self._visible_user_filter()
        if visible is not None:
            filters.append(visible)

        count_result = await self.db.execute(
            select(func.count()).select_from(User).where(*filters)
        )
        total = count_result.scalar_one()

        result = await self.db.execute(
            select(User).where(*filters).order_by(User.login_name).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_activity(self, user: User) -> list[dict[str, Any]]:
        """Profile changes of a user, oldest first."""
        result = await self.db.execute(
            select(ProfileActivity, User.login_name)
            .join(User, User.id == ProfileActivity.who)
            .where(ProfileActivity.user_id == user.id)
            .order_by(ProfileActivity.profiles_when, ProfileActivity.id)
        )
        return [
            {
                "when": activity.profiles_when,
                "who": who,
                "field": activity.fieldname,
                "removed": activity.oldvalue,
                "added": activity.newvalue,
            }
            for activity, who in result.all()
        ]

    # Validators

    async def check_login_name_for_creation(
        self, login: Optional[str], user: Optional[User] = None
    ) -> str:
        """
        Validate a login for a new account, or a login change of `user`.

        Raises:
            UserError: `user_login_required`, `login_illegal_character`,
                `login_too_long` or `account_exists`
        """
        login = trim(login)
        if not login:
            raise UserError("user_login_required")
        if any(ch.isspace() for ch in login):
            raise UserError("login_illegal_character")
        if len(login) > MAX_LOGIN_LENGTH:
            raise UserError("login_too_long", max_length=MAX_LOGIN_LENGTH)

        if user is None or user.login_name != login:
            old_login = user.login_name if user is not None else None
            if not await self.is_available_username(login, old_login):
                raise UserError("account_exists", status_code=409, login=login)
        return login

    @staticmethod
    def check_password(password: str) -> str:
        """Validate and hash a password; `*` disables database login."""
        if password == NO_DB_LOGIN_PASSWORD:
            return password
        assert_password_is_secure(password)
        return hash_password(password)

    async def check_extern_id(
        self, extern_id: Optional[str], user: Optional[User] = None
    ) -> Optional[str]:
        extern_id = trim(extern_id)
        if not extern_id:
            return None
        if user is None or user.extern_id != extern_id:
            result = await self.db.execute(
                select(User.login_name).where(User.extern_id == extern_id)
            )
            existing_login = result.scalar_one_or_none()
            if existing_login:
                raise UserError(
                    "extern_id_exists",
                    status_code=409,
                    extern_id=extern_id,
                    existing_login_name=existing_login,
                )
        return extern_id

    @staticmethod
    def check_disabledtext(text: Optional[str]) -> str:
        return sanitize_html(trim(text))

    @staticmethod
    def check_bounce_count(value: Any) -> int:
        if isinstance(value, bool) or not is_numeric_id(value):
            raise CodeError(
                "param_must_be_numeric",
                param=value,
                function="UserService.check_bounce_count",
            )
        return int(value)

    async def check_mfa(self, user: User, provider: Optional[str]) -> str:
        """
        Normalize an MFA provider name.

        Raises:
            UserError: `mfa_disable_denied` when turning off MFA for another
                user without being in `bz_can_disable_mfa`
        """
        provider = (provider or "").lower()
        if provider == "totp":
            return "TOTP"
        if provider == "duo":
            return "Duo"
        # Anything else disables MFA.
        if self.actor_id != user.id:
            if self.actor is None or not await self.actor.in_group("bz_can_disable_mfa"):
                raise UserError("mfa_disable_denied", status_code=403)
        return ""

    async def generate_nickname(self, realname: str, user_id: int) -> str:
        """The first `:nick` in the real name, unless another user holds it."""
        nicks = extract_nicks(realname)
        nick = nicks[0] if nicks else ""
        if not nick:
            return ""
        result = await self.db.execute(
            select(func.count())
            .select_from(User)
            .where(User.nickname == nick, User.id != user_id)
        )
        return "" if result.scalar_one() else nick

    # Lifecycle

    async def create(self, data: UserCreate) -> User:
        """
        Create a user with default mail settings and regexp-derived groups.

        Raises:
            UserError: If the login, password or external id is invalid
        """
        login = await self.check_login_name_for_creation(data.login)
        cryptpassword = self.check_password(data.password)
        realname = trim(data.realname)
        disabledtext = self.check_disabledtext(data.disabledtext)
        extern_id = await self.check_extern_id(data.extern_id)

        user = User(
            login_name=login,
            email=data.email or login,
            realname=realname,
            nickname=await self.generate_nickname(realname, 0),
            cryptpassword=cryptpassword,
            disabledtext=disabledtext,
            is_enabled=not disabledtext,
            # Disabled users never get mail.
            disable_mail=bool(data.disable_mail or disabledtext),
            extern_id=extern_id,
        )
        self.db.add(user)
        await self.db.flush()

        await self.create_default_email_settings(user)
        await self.derive_regexp_groups(user)

        self.db.add(
            ProfileActivity(
                user_id=user.id,
                who=self.actor_id or user.id,
                fieldname=FIELD_CREATION_TS,
                newvalue=_utcnow().strftime("%Y-%m-%d %H:%M:%S"),
            )
        )
        await self.db.flush()
        await self.db.refresh(user)

        log_data_modification(
            action="create",
            resource="user",
            resource_id=user.id,
            user_id=self.actor_id or user.id,
            changes={"login_name": login},
        )
        return user

    async def create_default_email_settings(self, user: User) -> None:
        """
        Turn on mail for every relationship and event.

        Exceptions: changes made by the user themselves, and CC additions
        unless the user is the reporter.
        """
        for relationship in RELATIONSHIPS:
            for event in POS_EVENTS + NEG_EVENTS:
                if event == EVT_CHANGED_BY_ME:
                    continue
                if event == EVT_CC and relationship != REL_REPORTER:
                    continue
                self.db.add(EmailSetting(user_id=user.id, relationship=relationship, event=event))
        for event in GLOBAL_EVENTS:
            self.db.add(EmailSetting(user_id=user.id, relationship=REL_ANY, event=event))
        await self.db.flush()

    async def derive_regexp_groups(self, user: User) -> None:
        """Add or remove REGEXP memberships so they follow the groups' user regexps."""
        if not user.id:
            return
        result = await self.db.execute(
            select(Group.id, Group.userregexp, UserGroupMap.id).outerjoin(
                UserGroupMap,
                and_(
                    UserGroupMap.group_id == Group.id,
                    UserGroupMap.user_id == user.id,
                    UserGroupMap.isbless.is_(False),
                    UserGroupMap.grant_type == GRANT_REGEXP,
                ),
            )
        )
        for group_id, regexp, present in result.all():
            if login_matches_regexp(regexp, user.login_name):
                if present is None:
                    self.db.add(
                        UserGroupMap(
                            user_id=user.id,
                            group_id=group_id,
                            isbless=False,
                            grant_type=GRANT_REGEXP,
                        )
                    )
            elif present is not None:
                await self.db.execute(delete(UserGroupMap).where(UserGroupMap.id == present))
        await self.db.flush()
        await self.cache.clear(GroupCache.user_groups_key(user.id))

    def edit(self, user: User) -> "UserEditor":
        """Start staging changes to a user."""
        return UserEditor(self, user)

    async def update(self, user: User, data: UserUpdate) -> dict[str, list]:
        """
        Apply a profile update request.

        Returns:
            Changes made, as `{field: [old, new]}`
        """
        editor = self.edit(user)
        fields = data.model_fields_set

        if "login" in fields and data.login is not None:
            await editor.set_login(data.login)
        if "realname" in fields and data.realname is not None:
            await editor.set_name(data.realname)
        if "nick" in fields and data.nick is not None:
            editor.set_nick(data.nick)
        if "disabledtext" in fields and data.disabledtext is not None:
            editor.set_disabledtext(data.disabledtext)
        if "disable_mail" in fields and data.disable_mail is not None:
            editor.set_disable_mail(data.disable_mail)
        if "extern_id" in fields:
            await editor.set_extern_id(data.extern_id)
        if "password" in fields and data.password is not None:
            editor.set_password(data.password)
        if "password_change_required" in fields and data.password_change_required is not None:
            editor.set_password_change_required(data.password_change_required)
        if "password_change_reason" in fields and data.password_change_reason is not None:
            editor.set_password_change_reason(data.password_change_reason)
        if "mfa" in fields:
            await editor.set_mfa(data.mfa)
        if "mfa_required_date" in fields:
            editor.set_mfa_required_date(data.mfa_required_date)
        if "bounce_count" in fields and data.bounce_count is not None:
            editor.set_bounce_count(data.bounce_count)
        if data.groups is not None:
            await editor.set_groups(data.groups.as_dict())
        if data.bless_groups is not None:
            await editor.set_bless_groups(data.bless_groups.as_dict())

        return await editor.update(keep_tokens=data.keep_tokens, keep_session=data.keep_session)

    async def update_last_seen_date(self, user: User) -> None:
        """Record today as the user's last visit; no write if already recorded."""
        if not user.id:
            return
        today = _utcnow().date()
        if user.last_seen_date == today:
            return
        await self.db.execute(
            update(User).where(User.id == user.id).values(last_seen_date=today)
        )
        # Only this column is written; other pending edits stay pending.
        set_committed_value(user, "last_seen_date", today)

    async def has_history(self, user: User) -> bool:
        """Whether the user appears as the actor in the audit or activity logs."""
        audit = await self.db.execute(
            select(AuditLog.id).where(AuditLog.user_id == user.id).limit(1)
        )
        if audit.scalar_one_or_none() is not None:
            return True
        activity = await self.db.execute(
            select(ProfileActivity.id)
            .where(ProfileActivity.who == user.id, ProfileActivity.user_id != user.id)
            .limit(1)
        )
        return activity.scalar_one_or_none() is not None

    async def delete(self, user: User, force: bool = False) -> None:
        """
        Delete an account and everything attached to it.

        Raises:
            UserError: `user_deletion_disabled` when deletion is turned off,
                `user_has_history` when the user made changes and not `force`
        """
        if not settings.allowuserdeletion:
            raise UserError("user_deletion_disabled", status_code=403)
        if not force and await self.has_history(user):
            raise UserError("user_has_history", status_code=409, login=user.login_name)

        user_id = user.id
        login = user.login_name
        for model, column in (
            (UserGroupMap, UserGroupMap.user_id),
            (EmailSetting, EmailSetting.user_id),
            (ProfileSetting, ProfileSetting.user_id),
            (Token, Token.user_id),
            (LoginFailure, LoginFailure.user_id),
            (ProfileActivity, ProfileActivity.user_id),
            (ProfileActivity, ProfileActivity.who),
        ):
            await self.db.execute(delete(model).where(column == user_id))
        await self.db.execute(
            update(AuditLog).where(AuditLog.user_id == user_id).values(user_id=None)
        )
        await self.db.execute(
            update(Group).where(Group.owner_user_id == user_id).values(owner_user_id=None)
        )
        await self.db.delete(user)
        await self.db.flush()

        await self.cache.clear(GroupCache.user_groups_key(user_id))
        if self.redis is not None:
            await SessionStore(self.redis).delete_all_user_sessions(user_id)

        log_data_modification(
            action="delete",
            resource="user",
            resource_id=user_id,
            user_id=self.actor_id,
            changes={"login_name": login},
        )

    # Account lockout

    async def account_ip_login_failures(self, user: User, ip_addr: str) -> list[LoginFailure]:
        """Recent failed logins of the user from one address."""
        since = _utcnow() - timedelta(minutes=settings.login_lockout_interval)
        result = await self.db.execute(
            select(LoginFailure)
            .where(
                LoginFailure.user_id == user.id,
                LoginFailure.ip_addr == ip_addr,
                LoginFailure.login_time > since,
            )
            .order_by(LoginFailure.login_time)
        )
        return list(result.scalars().all())

    async def account_is_locked_out(self, user: User, ip_addr: str) -> bool:
        failures = await self.account_ip_login_failures(user, ip_addr)
        return len(failures) >= settings.max_login_attempts

    async def note_login_failure(self, user: User, ip_addr: str) -> None:
        self.db.add(LoginFailure(user_id=user.id, ip_addr=ip_addr, login_time=_utcnow()))
        await self.db.flush()

    async def clear_login_failures(self, user: User, ip_addr: str) -> None:
        await self.db.execute(
            delete(LoginFailure).where(
                LoginFailure.user_id == user.id,
                LoginFailure.ip_addr == ip_addr,
            )
        )

    # Notification preferences

    async def mail_settings(self, user: User) -> dict[int, set[int]]:
        """Enabled mail events, as `{relationship: {event, ...}}`."""
        result = await self.db.execute(
            select(EmailSetting.relationship, EmailSetting.event).where(
                EmailSetting.user_id == user.id
            )
        )
        mail: dict[int, set[int]] = {}
        for relationship, event in result.all():
            mail.setdefault(relationship, set()).add(event)
        return mail

    async def wants_mail(
        self,
        user: User,
        events: Iterable[int],
        relationship: Optional[int] = None,
    ) -> bool:
        """Whether the user wants mail for any of the events in a relationship."""
        events = list(events)
        if not events:
            return False
        if relationship is None:
            relationship = REL_ANY
        if relationship == REL_GLOBAL_WATCHER:
            return True
        wanted = (await self.mail_settings(user)).get(relationship, set())
        return any(event in wanted for event in events)

    async def bounce_messages(self, user: User) -> list[AuditLog]:
        """The latest `bounce_count` bounce messages recorded for the user, newest first."""
        if user.bounce_count <= 0:
            return []
        result = await self.db.execute(
            select(AuditLog)
            .where(
                AuditLog.class_name == "User",
                AuditLog.object_id == user.id,
                AuditLog.field == BOUNCE_MESSAGE_FIELD,
            )
            .order_by(AuditLog.at_time.desc(), AuditLog.id.desc())
            .limit(user.bounce_count)
        )
        return list(result.scalars().all())


class UserEditor:
    """
    Validated, staged changes to one user.

    The `set_*` methods validate and assign; `update()` writes group changes,
    side effects and logs, and reports what changed.
    """

    def __init__(self, service: UserService, user: User):
        self.service = service
        self.db = service.db
        self.user = user
        self._original = {column: getattr(user, column) for column in UPDATE_COLUMNS}
        self._group_changes: dict[bool, tuple[list[Group], list[Group]]] = {}

    async def set_login(self, login: str) -> None:
        self.user.login_name = await self.service.check_login_name_for_creation(
            login, self.user
        )

    async def set_name(self, realname: str) -> None:
        self.user.realname = trim(realname)
        self.user.nickname = await self.service.generate_nickname(
            self.user.realname, self.user.id
        )

    def set_nick(self, nick: str) -> None:
        self.user.nickname = trim(nick)

    def set_password(self, password: str) -> None:
        # Accounts disabled for inactivity come back with a new password.
        if self.user.password_change_reason == INACTIVE_ACCOUNT_REASON:
            self.set_disabledtext("")
            self.set_disable_mail(False)
        self.user.cryptpassword = self.service.check_password(password)
        self.user.password_change_required = False
        self.user.password_change_reason = ""

    def set_disabledtext(self, text: str) -> None:
        self.user.disabledtext = self.service.check_disabledtext(text)
        self.user.is_enabled = self.user.disabledtext == ""
        if not self.user.is_enabled:
            self.user.disable_mail = True

    def set_disable_mail(self, disable_mail: bool) -> None:
        self.user.disable_mail = True if not self.user.is_enabled else bool(disable_mail)

    def set_email_enabled(self, enabled: bool) -> None:
        self.set_disable_mail(not enabled)

    async def set_extern_id(self, extern_id: Optional[str]) -> None:
        self.user.extern_id = await self.service.check_extern_id(extern_id, self.user)

    def set_password_change_required(self, required: bool) -> None:
        self.user.password_change_required = bool(required)
        if not required:
            self.user.password_change_reason = ""

    def set_password_change_reason(self, reason: str) -> None:
        self.user.password_change_reason = (
            trim(reason) if self.user.password_change_required else ""
        )

    async def set_mfa(self, provider: Optional[str]) -> None:
        self.user.mfa = await self.service.check_mfa(self.user, provider)

    def set_mfa_required_date(self, value: Optional[datetime]) -> None:
        self.user.mfa_required_date = value

    def set_bounce_count(self, count: Any) -> None:
        self.user.bounce_count = self.service.check_bounce_count(count)

    async def set_groups(self, changes: dict[str, list[GroupRef]]) -> None:
        await self._set_groups(False, changes)

    async def set_bless_groups(self, changes: dict[str, list[GroupRef]]) -> None:
        actor = self.service.actor
        if actor is None or not await actor.in_group("editusers"):
            raise UserError(
                "auth_failure",
                status_code=403,
                group="editusers",
                reason="cant_bless",
                action="edit",
                object="users",
            )
        await self._set_groups(True, changes)

    async def _groups_from_refs(self, refs: list[GroupRef]) -> list[Group]:
        """Resolve group ids or names; every group must be blessable by the actor."""
        actor = self.service.actor
        groups = []
        for ref in refs:
            if is_numeric_id(ref):
                query = select(Group).where(Group.id == int(ref))
            else:
                query = select(Group).where(Group.name == str(ref))
            group = (await self.db.execute(query)).scalar_one_or_none()
            if group is None or actor is None or not await actor.can_bless(group.id):
                raise UserError(
                    "auth_failure",
                    status_code=403,
                    group=ref,
                    reason="cant_bless",
                    action="edit",
                    object="users",
                )
            groups.append(group)
        return groups

    async def _set_groups(self, is_bless: bool, changes: dict[str, list[GroupRef]]) -> None:
        resolved = {}
        for key, refs in changes.items():
            if not isinstance(refs, (list, tuple)):
                raise CodeError("param_invalid", param=refs, function=key)
            resolved[key] = await self._groups_from_refs(list(refs))

        result = await self.db.execute(
            select(Group)
            .join(UserGroupMap, UserGroupMap.group_id == Group.id)
            .where(
                UserGroupMap.user_id == self.user.id,
                UserGroupMap.isbless.is_(is_bless),
                UserGroupMap.grant_type == GRANT_DIRECT,
            )
            .distinct()
            .order_by(Group.id)
        )
        current = list(result.scalars().all())

        actor = self.service.actor
        if "set" in resolved:
            new = []
            for group in resolved["set"]:
                if all(g.id != group.id for g in new):
                    new.append(group)
            # Memberships the actor cannot bless are kept.
            for group in current:
                blessable = actor is not None and await actor.can_bless(group.id)
                if not blessable and all(g.id != group.id for g in new):
                    new.append(group)
        else:
            new = list(current)
            for group in resolved.get("remove", []):
                new = [g for g in new if g.id != group.id]
            for group in resolved.get("add", []):
                if all(g.id != group.id for g in new):
                    new.append(group)

        removed, added = diff_lists(current, new, key=lambda g: g.id)
        if removed or added:
            self._group_changes[is_bless] = (removed, added)

    async def _update_groups(self, changes: dict[str, list]) -> None:
        actor_id = self.service.actor_id or self.user.id
        for is_bless, (removed, added) in self._group_changes.items():
            for group in removed:
                await self.db.execute(
                    delete(UserGroupMap).where(
                        UserGroupMap.user_id == self.user.id,
                        UserGroupMap.group_id == group.id,
                        UserGroupMap.isbless.is_(is_bless),
                        UserGroupMap.grant_type == GRANT_DIRECT,
                    )
                )
            for group in added:
                self.db.add(
                    UserGroupMap(
                        user_id=self.user.id,
                        group_id=group.id,
                        isbless=is_bless,
                        grant_type=GRANT_DIRECT,
                    )
                )

            field = "bless_groups" if is_bless else "groups"
            for group in removed:
                self.db.add(
                    AuditLog(
                        user_id=actor_id,
                        class_name="User",
                        object_id=self.user.id,
                        field=field,
                        removed=group.name,
                    )
                )
            for group in added:
                self.db.add(
                    AuditLog(
                        user_id=actor_id,
                        class_name="User",
                        object_id=self.user.id,
                        field=field,
                        added=group.name,
                    )
                )

            if not is_bless:
                self.db.add(
                    ProfileActivity(
                        user_id=self.user.id,
                        who=actor_id,
                        fieldname=FIELD_BUG_GROUP,
                        oldvalue=", ".join(g.name for g in removed),
                        newvalue=", ".join(g.name for g in added),
                    )
                )

            changes[field] = [[g.name for g in removed], [g.name for g in added]]

        if self._group_changes:
            await self.db.flush()
            await self.service.cache.clear(GroupCache.user_groups_key(self.user.id))
        self._group_changes = {}

    async def update(self, keep_tokens: bool = False, keep_session: bool = False) -> dict[str, list]:
        """
        Write the staged changes.

        Returns:
            Changes made, as `{field: [old, new]}`; password hashes are redacted
        """
        changes: dict[str, list] = {}
        for column, old in self._original.items():
            new = getattr(self.user, column)
            if new != old:
                changes[column] = [old, new]
        if "cryptpassword" in changes:
            changes["cryptpassword"] = [REDACTED, REDACTED]

        await self.db.flush()
        await self._update_groups(changes)

        if "login_name" in changes:
            if not keep_tokens:
                await self.db.execute(delete(Token).where(Token.user_id == self.user.id))
            await self.service.derive_regexp_groups(self.user)

        if "mfa" in changes and self.user.mfa == "":
            if self.service.actor_id != self.user.id:
                self.db.add(
                    AuditLog(
                        user_id=self.service.actor_id or None,
                        class_name="User",
                        object_id=self.user.id,
                        field="mfa",
                        removed=changes["mfa"][0],
                        added="",
                    )
                )
            self.user.mfa_required_date = None
            await self.db.flush()

        if not keep_session and any(column in changes for column in LOGOUT_COLUMNS):
            if self.service.redis is not None:
                await SessionStore(self.service.redis).delete_all_user_sessions(self.user.id)

        if changes:
            log_data_modification(
                action="update",
                resource="user",
                resource_id=self.user.id,
                user_id=self.service.actor_id,
                changes={field: values for field, values in changes.items()},
            )

        self._original = {column: getattr(self.user, column) for column in UPDATE_COLUMNS}
        return changes
