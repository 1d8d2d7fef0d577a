"""Notification builders for every scheduler-originated notice.

Texts are Arabic, matching what the platform shows elsewhere.  Engines
build notices here, write them through ``uow.notifications`` inside
their own transaction, and call ``record_delivered`` after commit so the
metric never counts a rolled-back notice.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import date, datetime
from uuid import UUID

from madrasa.core.metrics import NOTIFICATIONS_CREATED
from madrasa.models.course import Course
from madrasa.models.notification import (
    COURSE_AUTO_LAUNCHED,
    DEADLINE_REMINDER,
    NEW_TASK,
    PENALTY_APPLIED,
    Notification,
)
from madrasa.models.task import STATUS_EXPIRED, Task


def new_tasks_notice(
    *, user_id: UUID, course_id: UUID, day_number: int, count: int, now: datetime
) -> Notification:
    return Notification.new(
        user_id=user_id,
        type=NEW_TASK,
        title="مهام جديدة متاحة",
        message=f"مهام جديدة متاحة لليوم {day_number} ({count} مهمة)",
        related_id=course_id,
        created_at=now,
    )


def penalty_notice(*, task: Task, status: str, now: datetime) -> Notification:
    if status == STATUS_EXPIRED:
        title = "انتهت صلاحية المهمة"
        message = f"انتهت صلاحية المهمة: {task.title} - تم خصم درجات"
    else:
        title = "مهمة متأخرة"
        message = f"مهمة متأخرة: {task.title} - تم خصم درجات"
    return Notification.new(
        user_id=task.assigned_to,
        type=PENALTY_APPLIED,
        title=title,
        message=message,
        related_id=task.id,
        created_at=now,
    )


def deadline_reminder_notice(*, task: Task, now: datetime) -> Notification:
    return Notification.new(
        user_id=task.assigned_to,
        type=DEADLINE_REMINDER,
        title="تذكير بموعد التسليم",
        message=f"تذكير: موعد تسليم المهمة {task.title} خلال 24 ساعة",
        related_id=task.id,
        created_at=now,
    )


def course_launched_notice(
    *, user_id: UUID, course: Course, start_date: date, now: datetime
) -> Notification:
    return Notification.new(
        user_id=user_id,
        type=COURSE_AUTO_LAUNCHED,
        title="تم إطلاق الدورة تلقائياً",
        message=(
            f'تم إطلاق دورة "{course.name}" تلقائياً بسبب اكتمال الشروط المطلوبة. '
            f"ستبدأ الدورة في {start_date.isoformat()}."
        ),
        related_id=course.id,
        created_at=now,
    )


def record_delivered(notifications: Iterable[Notification]) -> None:
    for kind, count in Counter(n.type for n in notifications).items():
        NOTIFICATIONS_CREATED.labels(type=kind).inc(count)
