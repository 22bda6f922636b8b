# =============================================================================
# core/services/recurring.py - Recurring Job Generator
# =============================================================================
# Expands recurring customer profiles into concrete jobs for one week.
#
# Weekday numbering: 1 = the first day of the week window (week_start),
# 7 = the last. A profile scheduled on weekday 3 produces a job on
# week_start + 2 days.
#
# The generator is pure: it never touches storage. It is idempotent against
# its input, so a second run with the jobs of the first run produces nothing.
# =============================================================================

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Iterable

from core.models.dispatch import CustomerProfile, Job, JobStatus, ServiceType
from lib.utils import generate_id, utc_now

logger = logging.getLogger(__name__)

DEFAULT_RECURRING_PRIORITY = 3

# (profile id, scheduled date, start time)
OccurrenceKey = tuple[str, str, str]


def _occurrence_key(profile_id: str, scheduled: date, start_time: str) -> OccurrenceKey:
    return (profile_id, scheduled.isoformat(), start_time)


def generate_recurring_jobs(
    profiles: Iterable[CustomerProfile],
    existing_jobs: Iterable[Job],
    week_start: date,
    week_end: date,
    *,
    now: datetime | None = None,
    id_factory: Callable[[], str] | None = None,
) -> list[Job]:
    """
    Build the jobs recurring profiles call for within [week_start, week_end].

    Args:
        profiles: Customer profiles; non-recurring ones are ignored
        existing_jobs: Jobs already scheduled (used for de-duplication)
        week_start: First day of the window (weekday 1)
        week_end: Last day of the window, inclusive
        now: Timestamp for created_at/updated_at (defaults to current UTC time)
        id_factory: Produces job ids (defaults to generate_id("job"))

    Returns:
        New jobs, in profile order then weekday order. Never includes a
        (profile, date, start time) that already exists, including one
        generated earlier in the same call.
    """
    now = now or utc_now()
    id_factory = id_factory or (lambda: generate_id("job"))

    seen: set[OccurrenceKey] = {
        _occurrence_key(job.customer_profile_id, job.scheduled_date, job.scheduled_start_time)
        for job in existing_jobs
        if job.customer_profile_id
    }

    created: list[Job] = []
    for profile in profiles:
        if not profile.recurring_enabled:
            continue
        weekdays = profile.effective_weekdays
        if not weekdays:
            continue
        start_time = profile.recurring_start_time
        end_time = profile.recurring_end_time
        if not start_time or not end_time:
            logger.debug(f"Recurring profile {profile.id} has no time window, skipping")
            continue

        for weekday in sorted(set(weekdays)):
            scheduled = week_start + timedelta(days=weekday - 1)
            if scheduled < week_start or scheduled > week_end:
                continue

            key = _occurrence_key(profile.id, scheduled, start_time)
            if key in seen:
                continue
            seen.add(key)

            created.append(
                Job(
                    id=id_factory(),
                    title=profile.default_job_title or f"{profile.name} Recurring Service",
                    description=profile.default_description,
                    notes=profile.default_notes,
                    customer_profile_id=profile.id,
                    customer_name=profile.name,
                    customer_address=profile.address,
                    customer_phone=profile.phone,
                    service_type=profile.recurring_service_type or ServiceType.REGULAR,
                    priority=profile.recurring_priority or DEFAULT_RECURRING_PRIORITY,
                    status=JobStatus.PENDING,
                    scheduled_date=scheduled,
                    scheduled_start_time=start_time,
                    scheduled_end_time=end_time,
                    created_at=now,
                    updated_at=now,
                )
            )

    if created:
        logger.info(f"Generated {len(created)} recurring job(s) for {week_start} - {week_end}")
    return created
