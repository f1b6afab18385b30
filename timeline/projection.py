"""Projection of Linear issues and users onto timeline rows and groups.

Everything in this module is a pure function of its arguments: the same
issues, users and filter always give identical output, and nothing is
cached between calls.

All displayed instants are moved ``DISPLAY_SHIFT`` earlier by
``shift_for_display``. The timeline widget renders items two days late,
and shifting row bounds, the today marker and the default window by the
same amount keeps their relative positions intact. Do not drop the shift
from one of them without dropping it from all.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo

from integrations.linear_records import Issue, User, WorkflowState

DISPLAY_SHIFT = timedelta(days=2)
DEFAULT_DURATION = timedelta(days=1)

UNASSIGNED_GROUP_ID = "unassigned"
UNASSIGNED_GROUP_TITLE = "Unassigned"

COLOR_DONE = "#2ecc71"
COLOR_BACKLOG = "#95a5a6"
COLOR_IN_PROGRESS = "#f39c12"
COLOR_BLOCKED = "#e74c3c"
COLOR_DEFAULT = "#3498db"

# First match wins.
STATE_COLOR_RULES: Sequence[tuple[tuple[str, ...], str]] = (
    (("done", "complete"), COLOR_DONE),
    (("backlog",), COLOR_BACKLOG),
    (("in progress",), COLOR_IN_PROGRESS),
    (("blocked",), COLOR_BLOCKED),
)


@dataclass(frozen=True, slots=True)
class TimelineGroup:
    id: str
    title: str


@dataclass(frozen=True, slots=True)
class TimelineRow:
    id: str
    group_id: str
    title: str
    start_time: datetime
    end_time: datetime
    color: str


@dataclass(frozen=True, slots=True)
class TimelineWindow:
    start: datetime
    end: datetime
    today: datetime


def shift_for_display(moment: datetime) -> datetime:
    """Apply the display offset to a single instant."""
    return moment - DISPLAY_SHIFT


def state_color(state: WorkflowState) -> str:
    """Pick the row color for a workflow state.

    An explicit ``state.color`` always wins; otherwise the state name is
    matched case-insensitively against ``STATE_COLOR_RULES``.
    """
    if state.color:
        return state.color
    name = state.name.lower()
    for keywords, color in STATE_COLOR_RULES:
        if any(keyword in name for keyword in keywords):
            return color
    return COLOR_DEFAULT


def issue_bounds(issue: Issue, tz: tzinfo = timezone.utc) -> tuple[datetime, datetime]:
    """Return the unshifted ``(start, end)`` of an issue.

    Start is when work started, else when the issue was created. End is the
    due date (midnight in *tz*), else the completion time, else one day
    after start. An end earlier than start is replaced by start plus one
    day so a bar never has negative width.
    """
    start = issue.started_at or issue.created_at
    if issue.due_date is not None:
        end = datetime.combine(issue.due_date, time.min, tzinfo=tz)
    elif issue.completed_at is not None:
        end = issue.completed_at
    else:
        end = start + DEFAULT_DURATION
    if end < start:
        end = start + DEFAULT_DURATION
    return start, end


def group_id_for(issue: Issue) -> str:
    return issue.assignee.id if issue.assignee else UNASSIGNED_GROUP_ID


def filter_issues(issues: Iterable[Issue], selected_user_id: str | None = None) -> list[Issue]:
    """Keep the issues assigned to *selected_user_id*, or all when unset."""
    if not selected_user_id:
        return list(issues)
    return [issue for issue in issues if issue.assignee and issue.assignee.id == selected_user_id]


def project_issue(issue: Issue, tz: tzinfo = timezone.utc) -> TimelineRow:
    start, end = issue_bounds(issue, tz)
    return TimelineRow(
        id=issue.id,
        group_id=group_id_for(issue),
        title=f"{issue.identifier}: {issue.title}",
        start_time=shift_for_display(start),
        end_time=shift_for_display(end),
        color=state_color(issue.state),
    )


def build_groups(users: Iterable[User]) -> list[TimelineGroup]:
    """Sidebar groups: the unassigned bucket first, then users in input order."""
    groups = [TimelineGroup(id=UNASSIGNED_GROUP_ID, title=UNASSIGNED_GROUP_TITLE)]
    groups.extend(TimelineGroup(id=user.id, title=user.display_name or user.name) for user in users)
    return groups


def project(
    issues: Sequence[Issue],
    users: Sequence[User],
    selected_user_id: str | None = None,
    tz: tzinfo = timezone.utc,
) -> tuple[list[TimelineGroup], list[TimelineRow]]:
    """Project issues and users onto timeline groups and rows.

    Args:
        issues: Normalized issues, in upstream order.
        users: Normalized users, in upstream order.
        selected_user_id: Optional assignee filter.
        tz: Zone in which date-only due dates start.

    Returns:
        A ``(groups, rows)`` tuple. Rows keep the order of *issues*. An
        assignee missing from *users* still gets a group, appended after
        the user groups, so every row's group is listed.
    """
    groups = build_groups(users)
    known = {group.id for group in groups}
    rows = []
    for issue in filter_issues(issues, selected_user_id):
        row = project_issue(issue, tz)
        if row.group_id not in known:
            assignee = issue.assignee
            groups.append(TimelineGroup(id=assignee.id, title=assignee.display_name or assignee.name))
            known.add(row.group_id)
        rows.append(row)
    return groups, rows


def _add_months(moment: datetime, months: int) -> datetime:
    index = moment.month - 1 + months
    year, month = moment.year + index // 12, index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _start_of_month(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _end_of_month(moment: datetime) -> datetime:
    last_day = calendar.monthrange(moment.year, moment.month)[1]
    return moment.replace(day=last_day, hour=23, minute=59, second=59, microsecond=999999)


def display_window(now: datetime, tz: tzinfo = timezone.utc) -> TimelineWindow:
    """Default visible range and today marker, shifted like the rows.

    The range runs from the start of last month to the end of the month
    after next.
    """
    local_now = now.astimezone(tz)
    return TimelineWindow(
        start=_start_of_month(shift_for_display(_add_months(local_now, -1))),
        end=_end_of_month(shift_for_display(_add_months(local_now, 2))),
        today=shift_for_display(local_now),
    )
