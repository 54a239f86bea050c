from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from incubus.application.dto.auth import AuthenticatedPrincipal, IssuedAccessToken
from incubus.application.services.audit_service import AuditService, audit_log_to_dict
from incubus.application.services.auth_service import AuthService
from incubus.application.services.user_service import user_to_dict
from incubus.core.database import get_session
from incubus.core.errors import ApiException, bad_request, forbidden, not_found
from incubus.core.metrics import metrics_registry
from incubus.core.security import as_utc, utc_now
from incubus.domain.charts import ChartBox, DataPoint, DataSeries, scale_series
from incubus.domain.pagination import SortSpec
from incubus.domain.roles import UserRole
from incubus.infrastructure.repositories.admin_repository import AdminRepository
from incubus.infrastructure.repositories.audit_repository import AuditRepository
from incubus.infrastructure.repositories.auth_repository import AuthRepository

logger = logging.getLogger(__name__)

ANALYTICS_SERIES = ("users", "games", "sales")
SERIES_COLORS = {"users": "blue", "games": "green", "sales": "orange", "errors": "red"}
DEFAULT_ANALYTICS_DAYS = 30
RECENT_ERROR_LIMIT = 20


class AdminService:
    def __init__(self, auth_service: AuthService | None = None):
        self.auth_service = auth_service or AuthService()
        self.settings = self.auth_service.settings

    async def list_users(
        self,
        *,
        search_value: str | None,
        search_field: str,
        search_operator: str,
        role: str | None,
        banned: bool | None,
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> dict:
        async with get_session() as session:
            rows, total = await AuthRepository(session).list_users(
                search=search_value,
                search_fields=(search_field,),
                search_operator=search_operator,
                role=role,
                banned=banned,
                sort=sort,
                limit=limit,
                offset=offset,
            )
            return {
                "users": [user_to_dict(row) for row in rows],
                "total": total,
                "limit": limit,
                "offset": offset,
            }

    async def set_role(self, *, actor: AuthenticatedPrincipal, user_id: int, role: str) -> dict:
        if role not in {item.value for item in UserRole}:
            raise bad_request("INVALID_ROLE", f"Unknown role {role}")
        async with get_session() as session:
            repo = AuthRepository(session)
            user = await repo.get_user_by_id(user_id)
            if user is None:
                raise not_found("User")
            previous = user.role
            await repo.update(user, role=role)
            await AuditService.record_in_session(
                session,
                action="user.set_role",
                entity_type="user",
                entity_id=user.id,
                user_id=actor.user_id,
                details={"previous_role": previous, "role": role},
            )
            return user_to_dict(user)

    async def ban_user(
        self,
        *,
        actor: AuthenticatedPrincipal,
        user_id: int,
        reason: str | None,
        expires_in: int | None,
    ) -> dict:
        if user_id == actor.user_id:
            raise bad_request("CANNOT_BAN_SELF", "You cannot ban yourself")
        async with get_session() as session:
            repo = AuthRepository(session)
            user = await repo.get_user_by_id(user_id)
            if user is None:
                raise not_found("User")
            ban_expires = utc_now() + timedelta(seconds=expires_in) if expires_in else None
            await repo.update(user, banned=True, ban_reason=reason, ban_expires=ban_expires)
            revoked = await repo.revoke_user_sessions(user.id)
            await AuditService.record_in_session(
                session,
                action="user.ban",
                entity_type="user",
                entity_id=user.id,
                user_id=actor.user_id,
                details={
                    "reason": reason,
                    "expires_at": ban_expires.isoformat() if ban_expires else None,
                    "revoked_sessions": revoked,
                },
            )
            return user_to_dict(user)

    async def unban_user(self, *, actor: AuthenticatedPrincipal, user_id: int) -> dict:
        async with get_session() as session:
            repo = AuthRepository(session)
            user = await repo.get_user_by_id(user_id)
            if user is None:
                raise not_found("User")
            await repo.update(user, banned=False, ban_reason=None, ban_expires=None)
            await AuditService.record_in_session(
                session,
                action="user.unban",
                entity_type="user",
                entity_id=user.id,
                user_id=actor.user_id,
            )
            return user_to_dict(user)

    async def list_user_sessions(self, user_id: int) -> list[dict]:
        async with get_session() as session:
            repo = AuthRepository(session)
            if await repo.get_user_by_id(user_id) is None:
                raise not_found("User")
            rows = await repo.list_sessions(user_id=user_id, active_only=False)
            return [AuthService.session_to_dict(row) for row in rows]

    async def revoke_user_session(self, *, user_id: int, session_id: int) -> bool:
        async with get_session() as session:
            repo = AuthRepository(session)
            row = await repo.get_session_by_id(session_id)
            if row is None or row.user_id != user_id:
                raise not_found("Session")
            return await repo.revoke_session(row.token_jti)

    async def revoke_all_sessions(self, user_id: int) -> int:
        async with get_session() as session:
            repo = AuthRepository(session)
            if await repo.get_user_by_id(user_id) is None:
                raise not_found("User")
            return await repo.revoke_user_sessions(user_id)

    async def impersonate(
        self,
        *,
        actor: AuthenticatedPrincipal,
        user_id: int,
        user_agent: str | None,
        ip_address: str | None,
    ) -> tuple[IssuedAccessToken, AuthenticatedPrincipal]:
        if actor.impersonated_by is not None:
            raise bad_request("ALREADY_IMPERSONATING", "Stop the current impersonation first")
        if user_id == actor.user_id:
            raise bad_request("CANNOT_IMPERSONATE_SELF", "You cannot impersonate yourself")
        async with get_session() as session:
            user = await AuthRepository(session).get_user_by_id(user_id)
            if user is None:
                raise not_found("User")
            if user.role == UserRole.ADMIN:
                raise forbidden("Administrators cannot be impersonated")
            issued, principal = await self.auth_service.issue_session_in_session(
                session=session,
                user=user,
                user_agent=user_agent,
                ip_address=ip_address,
                ttl_seconds=self.settings.INCUBUS_AUTH_IMPERSONATION_MINUTES * 60,
                impersonated_by=actor.user_id,
                extra_claims={"admin_jti": actor.token_jti},
            )
            await AuditService.record_in_session(
                session,
                action="user.impersonate",
                entity_type="user",
                entity_id=user.id,
                user_id=actor.user_id,
            )
            return issued, principal

    async def stop_impersonating(
        self,
        *,
        principal: AuthenticatedPrincipal,
        access_token: str,
    ) -> tuple[IssuedAccessToken, AuthenticatedPrincipal]:
        """End the impersonation session and hand back the admin's original session."""
        if principal.impersonated_by is None or not principal.token_jti:
            raise bad_request("NOT_IMPERSONATING", "The current session is not an impersonation")
        admin_jti = self.auth_service.decode_access_claims(access_token).get("admin_jti")

        async with get_session() as session:
            repo = AuthRepository(session)
            admin_session = await repo.get_session_by_jti(str(admin_jti)) if admin_jti else None
            admin = await repo.get_user_by_id(principal.impersonated_by)
            if (
                admin is None
                or admin_session is None
                or admin_session.user_id != admin.id
                or admin_session.is_revoked
                or as_utc(admin_session.expires_at) <= utc_now()
            ):
                raise ApiException(
                    status_code=401,
                    error_code="SESSION_INVALID",
                    message="The original admin session is no longer valid",
                )
            await repo.revoke_session(principal.token_jti)
            await AuditService.record_in_session(
                session,
                action="user.stop_impersonating",
                entity_type="user",
                entity_id=principal.user_id,
                user_id=admin.id,
            )
            issued = self.auth_service.reissue_token(
                user_id=admin.id,
                token_jti=admin_session.token_jti,
                expires_at=admin_session.expires_at,
            )
            admin_principal = await self.auth_service.build_principal(
                session=session,
                user=admin,
                token_jti=admin_session.token_jti,
            )
            return issued, admin_principal

    async def remove_user(self, *, actor: AuthenticatedPrincipal, user_id: int) -> None:
        if user_id == actor.user_id:
            raise bad_request("CANNOT_REMOVE_SELF", "You cannot remove your own account")
        async with get_session() as session:
            repo = AuthRepository(session)
            user = await repo.get_user_by_id(user_id)
            if user is None:
                raise not_found("User")
            email = user.email
            await repo.delete(user.id)
            await AuditService.record_in_session(
                session,
                action="user.remove",
                entity_type="user",
                entity_id=user_id,
                user_id=actor.user_id,
                details={"email": email},
            )

    async def get_dashboard(self) -> dict:
        now = utc_now()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        async with get_session() as session:
            counts = await AdminRepository(session).get_dashboard_counts(day_start=day_start)
        return {"generated_at": now, **counts}

    async def get_analytics(
        self,
        *,
        series: list[str],
        start: datetime | None,
        end: datetime | None,
        box: ChartBox,
    ) -> dict:
        end = as_utc(end) or utc_now()
        start = as_utc(start) or end - timedelta(days=DEFAULT_ANALYTICS_DAYS)
        if start > end:
            raise bad_request("INVALID_DATE_RANGE", "start must be before end")
        unknown = sorted(set(series) - set(ANALYTICS_SERIES))
        if unknown:
            raise bad_request("UNKNOWN_SERIES", "Unknown analytics series", series=unknown)

        days = [
            (start + timedelta(days=offset)).date()
            for offset in range((end.date() - start.date()).days + 1)
        ]
        chart_series: list[DataSeries] = []
        async with get_session() as session:
            repo = AdminRepository(session)
            for name in series:
                totals = await repo.daily_counts(series=name, start=start, end=end)
                chart_series.append(
                    DataSeries(
                        id=name,
                        color=SERIES_COLORS[name],
                        data=[
                            DataPoint(
                                time=datetime(day.year, day.month, day.day, tzinfo=timezone.utc),
                                value=totals.get(day, 0.0),
                            )
                            for day in days
                        ],
                    )
                )
        layout = scale_series(chart_series, box, label_format="%m-%d")
        return {
            "start": start,
            "end": end,
            "series": [_series_to_dict(item) for item in chart_series],
            "layout": layout.as_dict(),
        }

    async def get_monitoring(self, *, hours: int, box: ChartBox) -> dict:
        now = utc_now()
        since = now - timedelta(hours=hours)
        async with get_session() as session:
            repo = AuditRepository(session)
            rows, total_errors = await repo.search(
                limit=RECENT_ERROR_LIMIT,
                offset=0,
                start=since,
                errors_only=True,
            )
            recent_errors = [audit_log_to_dict(row, user_name) for row, user_name in rows]
            per_hour = await repo.errors_per_hour(start=since)

        first_hour = since.replace(minute=0, second=0, microsecond=0)
        errors = DataSeries(
            id="errors",
            color=SERIES_COLORS["errors"],
            data=[
                DataPoint(time=hour, value=float(per_hour.get(hour, 0)))
                for hour in (first_hour + timedelta(hours=step) for step in range(hours + 1))
            ],
        )
        return {
            "generated_at": now,
            "http": metrics_registry.http_snapshot(),
            "error_count": total_errors,
            "recent_errors": recent_errors,
            "series": [_series_to_dict(errors)],
            "layout": scale_series([errors], box).as_dict(),
        }


def _series_to_dict(series: DataSeries) -> dict:
    return {
        "id": series.id,
        "color": series.color,
        "points": [{"time": point.time, "value": point.value} for point in series.data],
        "total": sum(point.value for point in series.data),
    }
