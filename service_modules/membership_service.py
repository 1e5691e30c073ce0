"""
Membership Service - subscription tracker listing and per-member grace overrides.
"""
from .base import logging, get_db_session, MemberORM, MemberNotFound, utcnow
from .expiry_service import remaining_days, effective_grace_days
from .settings_service import SettingsService, get_settings_service
from datetime import datetime
from typing import List, Optional

logger = logging.getLogger("gym_app")

NEARING_EXPIRY_DAYS = 7
TRACKER_FILTERS = ("all", "nearing", "expired")


class MembershipService:
    """Read-side views over member plans for the admin console."""

    def __init__(self, session_factory=get_db_session, settings: SettingsService = None):
        self.session_factory = session_factory
        self.settings = settings or get_settings_service()

    def get_subscriptions(self, status: str = "all", search: str = "", now: datetime = None) -> List[dict]:
        """
        Approved members ordered by expiry with the days left once grace is applied.
        status: all, nearing (0..7 days left) or expired (below 0).
        """
        if status not in TRACKER_FILTERS:
            raise ValueError(f"Unknown status filter: {status}")
        now = now or utcnow()
        default_grace = self.settings.get_global_grace_period()
        needle = (search or "").lower()

        db = self.session_factory()
        try:
            members = db.query(MemberORM).filter(
                MemberORM.approval_status == "approved"
            ).order_by(MemberORM.plan_expiry_date.asc()).all()

            rows = []
            for m in members:
                if needle and needle not in (m.full_name or "").lower():
                    continue

                try:
                    remaining = remaining_days(now, m.plan_expiry_date, m.grace_period, default_grace)
                except ValueError as e:
                    # Unreadable expiry: listed under "all" only
                    logger.warning(f"Cannot resolve expiry for member {m.id}: {e}")
                    remaining = None
                if status == "nearing" and not (remaining is not None and 0 <= remaining <= NEARING_EXPIRY_DAYS):
                    continue
                if status == "expired" and not (remaining is not None and remaining < 0):
                    continue

                rows.append({
                    "id": m.id,
                    "full_name": m.full_name,
                    "essl_id": m.essl_id,
                    "plan_expiry_date": m.plan_expiry_date,
                    "grace_period": m.grace_period,
                    "effective_grace_period": effective_grace_days(m.grace_period, default_grace),
                    "uses_global_grace": m.grace_period is None,
                    "remaining_days": remaining,
                    "plan_status": m.plan_status,
                    "essl_blocked": bool(m.essl_blocked)
                })
            return rows

        finally:
            db.close()

    def set_member_grace_period(self, member_id: str, days: Optional[int]) -> dict:
        """Set or clear (None) the per-member grace override. Device state follows on the next sweep."""
        db = self.session_factory()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise MemberNotFound(member_id)

            member.grace_period = days
            db.commit()

            logger.info(f"Grace period for member {member_id} set to {days if days is not None else 'global'}")
            return {"id": member_id, "grace_period": days}

        except MemberNotFound:
            raise
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


# Singleton instance
membership_service = MembershipService()


def get_membership_service() -> MembershipService:
    """Dependency injection helper."""
    return membership_service
