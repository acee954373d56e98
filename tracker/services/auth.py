"""Authentication service for login, token management and account creation."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import redis.asyncio as redis
import structlog
from jose import JWTError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.config import settings
from tracker.constants import MAX_TOKEN_AGE_DAYS, TOKEN_ACCOUNT
from tracker.core.exceptions import (
    AccountLockedError,
    AuthenticationError,
    CodeError,
    UserError,
)
from tracker.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_session_id,
    generate_token,
    hash_password,
    needs_rehash,
    token_remaining_seconds,
    verify_password,
)
from tracker.middleware.audit_logger import log_auth_event
from tracker.models.token import Token
from tracker.models.user import User
from tracker.redis import SessionStore, TokenBlacklist
from tracker.schemas.auth import TokenResponse
from tracker.schemas.user import UserCreate
from tracker.services.user import UserService

logger = structlog.get_logger()


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: AsyncSession, redis_client: Optional[redis.Redis]):
        self.db = db
        self.redis = redis_client
        self.users = UserService(db, redis_client)

    @property
    def token_blacklist(self) -> Optional[TokenBlacklist]:
        return TokenBlacklist(self.redis) if self.redis is not None else None

    @property
    def session_store(self) -> Optional[SessionStore]:
        return SessionStore(self.redis) if self.redis is not None else None

    async def authenticate(
        self, login: str, password: str, ip_addr: str = "unknown"
    ) -> tuple[User, TokenResponse]:
        """
        Authenticate a user and return tokens.

        Failed attempts are recorded per user and address; once
        `max_login_attempts` failures happened within
        `login_lockout_interval` minutes, logins from that address are
        refused until the oldest failure ages out.

        Returns:
            Tuple of (user, token response)

        Raises:
            AuthenticationError: If credentials are invalid or the account is disabled
            AccountLockedError: If the account is locked for this address
        """
        user = await self.users.get_by_login(login)
        if not user:
            log_auth_event("login", login=login, success=False, reason="unknown_user", ip_address=ip_addr)
            raise AuthenticationError(message="Invalid credentials")

        if await self.users.account_is_locked_out(user, ip_addr):
            raise AccountLockedError(unlock_at=await self._unlock_at(user, ip_addr))

        if not user.can_login_with_password or not verify_password(password, user.cryptpassword):
            await self.users.note_login_failure(user, ip_addr)
            locked = await self.users.account_is_locked_out(user, ip_addr)
            log_auth_event(
                "login",
                user_id=user.id,
                login=user.login_name,
                success=False,
                reason="account_locked" if locked else "invalid_password",
                ip_address=ip_addr,
            )
            # The failure must survive the rollback of this request.
            await self.db.commit()
            if locked:
                raise AccountLockedError(unlock_at=await self._unlock_at(user, ip_addr))
            raise AuthenticationError(message="Invalid credentials")

        if not user.is_enabled:
            log_auth_event(
                "login",
                user_id=user.id,
                login=user.login_name,
                success=False,
                reason="account_disabled",
                ip_address=ip_addr,
            )
            raise AuthenticationError(
                message=user.disabledtext or "Account is disabled",
                code="account_disabled",
            )

        await self.users.clear_login_failures(user, ip_addr)

        # Check if password needs rehashing
        if needs_rehash(user.cryptpassword):
            user.cryptpassword = hash_password(password)
            await self.db.flush()

        await self.users.update_last_seen_date(user)

        log_auth_event("login", user_id=user.id, login=user.login_name, success=True, ip_address=ip_addr)
        return user, await self._issue_tokens(user)

    async def _unlock_at(self, user: User, ip_addr: str) -> Optional[str]:
        failures = await self.users.account_ip_login_failures(user, ip_addr)
        if not failures:
            return None
        first = failures[0].login_time
        if first.tzinfo is None:
            first = first.replace(tzinfo=timezone.utc)
        return (first + timedelta(minutes=settings.login_lockout_interval)).isoformat()

    async def _issue_tokens(self, user: User) -> TokenResponse:
        session_id = generate_session_id()
        access_token = create_access_token(user_id=user.id, session_id=session_id)
        refresh_token, refresh_jti = create_refresh_token(user_id=user.id, session_id=session_id)

        if self.session_store is not None:
            await self.session_store.create(
                session_id=session_id,
                user_id=user.id,
                refresh_token=refresh_jti,
                expires_in=settings.refresh_token_expire_days * 24 * 60 * 60,
            )

        return TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=settings.access_token_expire_minutes * 60,
            password_change_required=user.password_change_required,
        )

    async def refresh_tokens(self, refresh_token: str) -> TokenResponse:
        """
        Exchange a refresh token for a new token pair.

        Raises:
            AuthenticationError: If refresh token is invalid
        """
        try:
            payload = decode_token(refresh_token)
        except JWTError:
            raise AuthenticationError(message="Invalid refresh token")

        if payload.get("type") != "refresh":
            raise AuthenticationError(message="Invalid token type")

        jti = payload.get("jti")
        if jti and self.token_blacklist is not None:
            if await self.token_blacklist.is_blacklisted(jti):
                raise AuthenticationError(message="Token has been revoked")

        session_id = payload.get("session_id")
        if self.session_store is not None:
            session = await self.session_store.get(session_id)
            if not session:
                raise AuthenticationError(message="Session expired")
            if session.get("refresh_token") != jti:
                raise AuthenticationError(message="Invalid refresh token")

        try:
            user = await self.users.get_by_id(int(payload.get("sub", "")))
        except ValueError:
            raise AuthenticationError(message="Invalid token payload")
        if not user or not user.is_enabled:
            raise AuthenticationError(message="User not found or disabled")

        # Refresh tokens are single use.
        if self.token_blacklist is not None:
            await self.token_blacklist.add(jti, token_remaining_seconds(payload))
        if self.session_store is not None:
            await self.session_store.delete(session_id)

        return await self._issue_tokens(user)

    async def logout(self, access_token: str, refresh_token: Optional[str] = None) -> None:
        """Invalidate the access token, its session and optionally a refresh token."""
        for token in (access_token, refresh_token):
            if not token:
                continue
            try:
                payload = decode_token(token)
            except JWTError:
                # Already invalid
                continue
            jti = payload.get("jti")
            if jti and self.token_blacklist is not None:
                await self.token_blacklist.add(jti, token_remaining_seconds(payload))
            session_id = payload.get("session_id")
            if session_id and self.session_store is not None:
                await self.session_store.delete(session_id)

    async def logout_all_devices(self, user_id: int) -> int:
        """
        Logout user from all devices.

        Returns:
            Number of sessions invalidated
        """
        if self.session_store is None:
            return 0
        return await self.session_store.delete_all_user_sessions(user_id)

    async def change_password(
        self, user: User, current_password: str, new_password: str
    ) -> None:
        """
        Change the user's password; all their sessions end.

        Raises:
            AuthenticationError: If current password is incorrect
            UserError: If the new password is not secure enough
        """
        if not verify_password(current_password, user.cryptpassword):
            raise AuthenticationError(message="Current password is incorrect")

        editor = self.users.edit(user)
        editor.set_password(new_password)
        await editor.update()
        log_auth_event("password_change", user_id=user.id, login=user.login_name, success=True)

    # Account creation

    def check_account_creation_enabled(self) -> None:
        """
        Raises:
            UserError: `account_creation_disabled` when self-registration is off
        """
        if not settings.createemailregexp:
            raise UserError("account_creation_disabled", status_code=403)

    async def check_and_send_account_creation_confirmation(self, login: str, email: str) -> str:
        """
        Validate a self-registration request and issue its confirmation token.

        Returns:
            The token that confirms the account; it is meant to be mailed
            to `email`.

        Raises:
            UserError: If the login is invalid or taken, or the address is
                not allowed to register
        """
        self.check_account_creation_enabled()
        login = await self.users.check_login_name_for_creation(login)
        email = email.strip()

        try:
            allowed = re.search(settings.createemailregexp, email, re.IGNORECASE)
        except re.error as exc:
            raise CodeError("invalid_createemailregexp", error=exc)
        if not allowed:
            raise UserError("account_creation_restricted", status_code=403)

        token = generate_token()
        self.db.add(
            Token(
                token=token,
                user_id=None,
                issuedate=datetime.now(timezone.utc),
                tokentype=TOKEN_ACCOUNT,
                eventdata=f"{login}:{email}",
            )
        )
        await self.db.flush()

        logger.info("account_token_issued", login=login, email=email)
        logger.debug("account_token", login=login, token=token)
        return token

    async def confirm_account_creation(self, token: str, realname: str, password: str) -> User:
        """
        Create the account a confirmation token was issued for.

        Raises:
            UserError: `token_does_not_exist` for unknown or expired tokens
        """
        since = datetime.now(timezone.utc) - timedelta(days=MAX_TOKEN_AGE_DAYS)
        result = await self.db.execute(
            select(Token).where(
                Token.token == token,
                Token.tokentype == TOKEN_ACCOUNT,
                Token.issuedate > since,
            )
        )
        account_token = result.scalar_one_or_none()
        if account_token is None or not account_token.eventdata:
            raise UserError("token_does_not_exist", status_code=404)

        login, _, email = account_token.eventdata.rpartition(":")
        user = await self.users.create(
            UserCreate(login=login, email=email, realname=realname, password=password)
        )
        await self.db.execute(delete(Token).where(Token.token == token))

        log_auth_event("account_created", user_id=user.id, login=user.login_name, success=True)
        return user

