from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from incubus.application.dto.auth import AuthenticatedPrincipal, IssuedAccessToken
from incubus.core.config import get_settings
from incubus.core.database import get_session
from incubus.core.errors import ApiException, conflict, not_found
from incubus.core.security import (
    as_utc,
    create_signed_token,
    decode_signed_token,
    hash_password,
    random_jti,
    utc_now,
    verify_password,
)
from incubus.domain.roles import UserRole, build_role_tags
from incubus.infrastructure.db.models.auth import User
from incubus.infrastructure.oauth.google_client import GoogleOAuthClient, GoogleOAuthError
from incubus.infrastructure.repositories.auth_repository import AuthRepository
from incubus.infrastructure.repositories.staff_repository import StaffRepository

logger = logging.getLogger(__name__)

GOOGLE_PROVIDER = "google"


class AuthService:
    def __init__(self):
        self.settings = get_settings()

    def _oauth_client(self) -> GoogleOAuthClient:
        return GoogleOAuthClient(
            client_id=self.settings.GOOGLE_CLIENT_ID,
            client_secret=self.settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=self.settings.GOOGLE_REDIRECT_URI,
            oauth_scopes=self.settings.google_oauth_scopes,
            authorize_url=self.settings.GOOGLE_AUTHORIZE_URL,
            token_url=self.settings.GOOGLE_TOKEN_URL,
            userinfo_url=self.settings.GOOGLE_USERINFO_URL,
        )

    def _ensure_oauth_config(self) -> None:
        if not self.settings.GOOGLE_CLIENT_ID or not self.settings.GOOGLE_CLIENT_SECRET:
            raise ApiException(
                status_code=500,
                error_code="OAUTH_CONFIG_MISSING",
                message="Google OAuth credentials are not configured",
            )
        self._ensure_jwt_config()

    def _ensure_jwt_config(self) -> None:
        if not self.settings.JWT_SECRET:
            raise ApiException(
                status_code=500,
                error_code="JWT_SECRET_MISSING",
                message="JWT_SECRET is required for authentication",
            )

    async def register(
        self,
        *,
        email: str,
        password: str,
        name: str,
        user_agent: str | None,
        ip_address: str | None,
    ) -> tuple[IssuedAccessToken, AuthenticatedPrincipal]:
        self._ensure_jwt_config()
        async with get_session() as session:
            repo = AuthRepository(session)
            if await repo.get_user_by_email(email) is not None:
                raise conflict("EMAIL_ALREADY_EXISTS", "A user with this email already exists")
            user = await repo.create_user(
                email=email,
                name=name,
                password_hash=hash_password(password),
                role=self._initial_role(email),
            )
            logger.info("Registered user user_id=%s", user.id)
            return await self.issue_session_in_session(
                session=session,
                user=user,
                user_agent=user_agent,
                ip_address=ip_address,
            )

    async def sign_in(
        self,
        *,
        email: str,
        password: str,
        user_agent: str | None,
        ip_address: str | None,
    ) -> tuple[IssuedAccessToken, AuthenticatedPrincipal]:
        self._ensure_jwt_config()
        async with get_session() as session:
            repo = AuthRepository(session)
            user = await repo.get_user_by_email(email)
            verified, rehashed = verify_password(password, user.password_hash if user else None)
            if user is None or not verified:
                raise ApiException(
                    status_code=401,
                    error_code="INVALID_CREDENTIALS",
                    message="Invalid email or password",
                )
            if rehashed:
                user.password_hash = rehashed
            self.ensure_not_banned(user)
            return await self.issue_session_in_session(
                session=session,
                user=user,
                user_agent=user_agent,
                ip_address=ip_address,
            )

    async def build_google_login(self, next_url: str | None = None) -> dict[str, Any]:
        self._ensure_oauth_config()
        state_token, expires_at = create_signed_token(
            settings=self.settings,
            token_type="oauth_state",
            claims={
                "nonce": random_jti(8),
                "next_url": next_url or "",
            },
            ttl_seconds=self.settings.INCUBUS_AUTH_STATE_TTL_SECONDS,
        )
        return {
            "authorize_url": self._oauth_client().build_authorize_url(state_token),
            "state": state_token,
            "state_expires_at": expires_at,
            "next_url": next_url or "",
        }

    async def exchange_google_callback(
        self,
        *,
        code: str,
        state: str,
        user_agent: str | None,
        ip_address: str | None,
    ) -> tuple[IssuedAccessToken, AuthenticatedPrincipal]:
        self._ensure_oauth_config()
        decode_signed_token(settings=self.settings, token=state, expected_type="oauth_state")

        client = self._oauth_client()
        try:
            token_payload = await client.exchange_code(code)
            profile = await client.fetch_user(token_payload["access_token"])
        except GoogleOAuthError as exc:
            raise ApiException(
                status_code=502,
                error_code="GOOGLE_OAUTH_FAILED",
                message=str(exc),
            ) from exc

        email = str(profile["email"]).strip().lower()
        async with get_session() as session:
            repo = AuthRepository(session)
            account = await repo.get_account(
                provider=GOOGLE_PROVIDER,
                provider_account_id=str(profile["sub"]),
            )
            user = await repo.get_user_by_id(account.user_id) if account else None
            if user is None:
                user = await repo.get_user_by_email(email)
            if user is None:
                user = await repo.create_user(
                    email=email,
                    name=str(profile.get("name") or email.split("@")[0])[:100],
                    password_hash=None,
                    role=self._initial_role(email),
                    image=profile.get("picture"),
                    email_verified=bool(profile.get("email_verified")),
                )
            else:
                if not user.image and profile.get("picture"):
                    user.image = profile["picture"]
                if profile.get("email_verified"):
                    user.email_verified = True
            await repo.link_account(
                user_id=user.id,
                provider=GOOGLE_PROVIDER,
                provider_account_id=str(profile["sub"]),
                scope=token_payload.get("scope"),
            )
            self.ensure_not_banned(user)
            return await self.issue_session_in_session(
                session=session,
                user=user,
                user_agent=user_agent,
                ip_address=ip_address,
            )

    async def get_principal_from_access_token(self, token: str) -> AuthenticatedPrincipal:
        self._ensure_jwt_config()
        payload = decode_signed_token(
            settings=self.settings,
            token=token,
            expected_type="access",
        )
        try:
            user_id = int(payload["sub"])
            token_jti = str(payload["jti"])
        except (KeyError, ValueError, TypeError) as exc:
            raise ApiException(
                status_code=401,
                error_code="TOKEN_PAYLOAD_INVALID",
                message="Authentication token payload is invalid",
            ) from exc

        async with get_session() as session:
            repo = AuthRepository(session)
            user = await repo.get_user_by_id(user_id)
            if user is None:
                raise ApiException(
                    status_code=401,
                    error_code="USER_NOT_FOUND",
                    message="Authenticated user no longer exists",
                )
            db_session = await repo.get_session_by_jti(token_jti)
            if (
                db_session is None
                or db_session.user_id != user.id
                or db_session.is_revoked
                or as_utc(db_session.expires_at) <= utc_now()
            ):
                raise ApiException(
                    status_code=401,
                    error_code="SESSION_INVALID",
                    message="Session is invalid or expired",
                )
            self.ensure_not_banned(user)
            return await self.build_principal(
                session=session,
                user=user,
                token_jti=token_jti,
                impersonated_by=db_session.impersonated_by_user_id,
            )

    async def logout(self, token_jti: str) -> None:
        async with get_session() as session:
            repo = AuthRepository(session)
            await repo.revoke_session(token_jti)

    async def list_sessions(self, *, user_id: int, current_jti: str | None) -> list[dict]:
        async with get_session() as session:
            repo = AuthRepository(session)
            rows = await repo.list_sessions(user_id=user_id)
            return [self.session_to_dict(row, current_jti=current_jti) for row in rows]

    async def revoke_own_session(self, *, user_id: int, session_id: int) -> dict:
        async with get_session() as session:
            repo = AuthRepository(session)
            row = await repo.get_session_by_id(session_id)
            if row is None or row.user_id != user_id:
                raise not_found("Session")
            revoked = await repo.revoke_session(row.token_jti)
            return {"revoked": revoked}

    async def build_principal(
        self,
        *,
        session: AsyncSession,
        user: User,
        token_jti: str | None,
        impersonated_by: int | None = None,
    ) -> AuthenticatedPrincipal:
        staff_repo = StaffRepository(session)
        platform_staff = await staff_repo.get_platform_staff(user.id)
        publisher_staff = await staff_repo.get_publisher_staff(user.id)
        player = await staff_repo.get_player(user.id)
        platform_role = platform_staff.role if platform_staff else None
        publisher_role = publisher_staff.role if publisher_staff else None
        return AuthenticatedPrincipal(
            user_id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            roles=build_role_tags(
                user_role=user.role,
                platform_role=platform_role,
                publisher_role=publisher_role,
                is_player=player is not None,
            ),
            platform_role=platform_role,
            publisher_role=publisher_role,
            publisher_id=publisher_staff.publisher_id if publisher_staff else None,
            is_player=player is not None,
            image=user.image,
            token_jti=token_jti,
            impersonated_by=impersonated_by,
        )

    async def issue_session_in_session(
        self,
        *,
        session: AsyncSession,
        user: User,
        user_agent: str | None,
        ip_address: str | None,
        ttl_seconds: int | None = None,
        impersonated_by: int | None = None,
        extra_claims: dict[str, Any] | None = None,
    ) -> tuple[IssuedAccessToken, AuthenticatedPrincipal]:
        """Create the session row and its access token inside the caller's transaction."""
        repo = AuthRepository(session)
        token_jti = random_jti(18)
        access_token, expires_at = create_signed_token(
            settings=self.settings,
            token_type="access",
            claims={"sub": str(user.id), "jti": token_jti, **(extra_claims or {})},
            ttl_seconds=ttl_seconds or self.settings.JWT_EXP_MINUTES * 60,
        )
        await repo.create_session(
            user_id=user.id,
            token_jti=token_jti,
            expires_at=expires_at,
            user_agent=user_agent,
            ip_address=ip_address,
            impersonated_by_user_id=impersonated_by,
        )
        if impersonated_by is None:
            await repo.touch_user_login(user.id)
        principal = await self.build_principal(
            session=session,
            user=user,
            token_jti=token_jti,
            impersonated_by=impersonated_by,
        )
        return (
            IssuedAccessToken(access_token=access_token, expires_at=expires_at, token_jti=token_jti),
            principal,
        )

    def reissue_token(self, *, user_id: int, token_jti: str, expires_at: datetime) -> IssuedAccessToken:
        """Sign a fresh access token for an existing, still valid session row."""
        remaining = int((as_utc(expires_at) - utc_now()).total_seconds())
        if remaining <= 0:
            raise ApiException(
                status_code=401,
                error_code="SESSION_INVALID",
                message="Session is invalid or expired",
            )
        access_token, token_expires_at = create_signed_token(
            settings=self.settings,
            token_type="access",
            claims={"sub": str(user_id), "jti": token_jti},
            ttl_seconds=remaining,
        )
        return IssuedAccessToken(
            access_token=access_token,
            expires_at=token_expires_at,
            token_jti=token_jti,
        )

    def decode_access_claims(self, token: str) -> dict[str, Any]:
        return decode_signed_token(settings=self.settings, token=token, expected_type="access")

    @staticmethod
    def ensure_not_banned(user: User) -> None:
        """Reject banned users; a ban whose expiry has passed is lifted in place."""
        if not user.banned:
            return
        if user.ban_expires is not None and as_utc(user.ban_expires) <= utc_now():
            user.banned = False
            user.ban_reason = None
            user.ban_expires = None
            return
        raise ApiException(
            status_code=403,
            error_code="USER_BANNED",
            message="This account has been banned",
            details={
                "reason": user.ban_reason,
                "expires_at": user.ban_expires.isoformat() if user.ban_expires else None,
            },
        )

    def _initial_role(self, email: str) -> str:
        if email.strip().lower() in self.settings.admin_emails:
            return UserRole.ADMIN.value
        return UserRole.USER.value

    @staticmethod
    def session_to_dict(row, *, current_jti: str | None = None) -> dict:
        return {
            "id": row.id,
            "user_id": row.user_id,
            "expires_at": row.expires_at,
            "created_at": row.created_at,
            "is_revoked": row.is_revoked,
            "user_agent": row.user_agent,
            "ip_address": row.ip_address,
            "impersonated_by": row.impersonated_by_user_id,
            "is_current": current_jti is not None and row.token_jti == current_jti,
        }

