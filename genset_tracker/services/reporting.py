"""
Read-only fleet reporting: dashboard statistics and log filter options.

Nothing here writes to the store. Scope follows access_policy.
"""
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Session
from genset_tracker.config import settings
from genset_tracker.models.audit import LogEntry
from genset_tracker.models.domain import Generator, User, Venue
from genset_tracker.models.enums import GeneratorStatus, LogAction
from genset_tracker.services import access_policy


class ReportingService:

    def __init__(self, db: Session):
        self.db = db

    def fleet_stats(self, acting_user: User, now: Optional[datetime] = None) -> dict:
        """
        Status, capacity and activity figures for the caller's scope.

        Admins additionally get per-user activity and venue/user counts.
        """
        now = now or datetime.utcnow()
        admin = access_policy.is_admin(acting_user)
        generators = access_policy.visible_generators(self.db, acting_user)

        total_capacity = sum(g.capacity or 0 for g in generators)
        active_capacity = sum(g.capacity or 0 for g in generators if g.status == GeneratorStatus.ON)
        gensets_on = len([g for g in generators if g.status == GeneratorStatus.ON])

        overall = {
            "total_gensets": len(generators),
            "gensets_on": gensets_on,
            "gensets_off": len(generators) - gensets_on,
            "total_capacity": total_capacity,
            "active_capacity": active_capacity,
            "utilization_rate": round(active_capacity / total_capacity * 100) if total_capacity > 0 else 0,
        }

        by_venue = OrderedDict()
        for generator in generators:
            if generator.venue is None:
                continue
            stats = by_venue.setdefault(generator.venue.name, {"total": 0, "on": 0, "off": 0})
            stats["total"] += 1
            if generator.status == GeneratorStatus.ON:
                stats["on"] += 1
            else:
                stats["off"] += 1

        since = now - timedelta(days=settings.ACTIVITY_WINDOW_DAYS)
        log_query = self.db.query(LogEntry).filter(LogEntry.timestamp >= since)
        if not admin:
            log_query = log_query.filter(LogEntry.venue_id == acting_user.assigned_venue_id)
        recent_logs = log_query.order_by(LogEntry.timestamp.asc()).all()

        activity = OrderedDict()
        for entry in recent_logs:
            day = entry.timestamp.date().isoformat()
            bucket = activity.setdefault(day, {"date": day, "total": 0, "turn_on": 0, "turn_off": 0})
            bucket["total"] += 1
            if entry.action == LogAction.TURN_ON:
                bucket["turn_on"] += 1
            elif entry.action == LogAction.TURN_OFF:
                bucket["turn_off"] += 1

        user_activity = None
        if admin:
            counts = {}
            for entry in recent_logs:
                counts[entry.user_id] = counts.get(entry.user_id, 0) + 1
            names = dict(self.db.query(User.id, User.username).filter(User.id.in_(list(counts))).all()) if counts else {}
            user_activity = [
                {"username": names.get(user_id, "Unknown"), "actions": count}
                for user_id, count in counts.items()
            ]
            overall["total_venues"] = self.db.query(Venue).filter(Venue.is_active.is_(True)).count()
            overall["total_users"] = self.db.query(User).filter(User.is_active.is_(True)).count()

        return {
            "overall_stats": overall,
            "gensets_by_venue": [dict(name=name, **stats) for name, stats in by_venue.items()],
            "activity_trend": list(activity.values()),
            "user_activity": user_activity,
            "last_updated": now,
        }

    def filter_options(self, acting_user: User) -> dict:
        """Choices for the log filter controls, limited to what the caller may see."""
        admin = access_policy.is_admin(acting_user)

        venues = []
        if admin:
            venues = self.db.query(Venue).filter(Venue.is_active.is_(True)).order_by(Venue.name).all()
        elif acting_user.assigned_venue_id is not None:
            venues = self.db.query(Venue).filter(
                Venue.id == acting_user.assigned_venue_id,
                Venue.is_active.is_(True)
            ).all()

        generators = []
        scope = access_policy.scope_filter(acting_user, require_venue=False)
        if scope is not None:
            query = self.db.query(Generator).filter(Generator.is_active.is_(True))
            if "venue_id" in scope:
                query = query.filter(Generator.venue_id == scope["venue_id"])
            generators = query.order_by(Generator.name).all()

        users = []
        if admin:
            users = self.db.query(User).filter(User.is_active.is_(True)).order_by(User.username).all()

        actions = sorted(row[0].value for row in self.db.query(LogEntry.action).distinct().all())

        return {
            "venues": [{"id": v.id, "name": v.name} for v in venues],
            "gensets": [
                {"id": g.id, "name": g.name, "venue_name": g.venue.name if g.venue else "No Venue"}
                for g in generators
            ],
            "users": [{"id": u.id, "username": u.username} for u in users],
            "actions": actions,
        }
