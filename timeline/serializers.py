"""JSON rendering of the projected timeline."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta, timezone, tzinfo

from rest_framework import serializers

from integrations.linear_records import Issue, User
from timeline.projection import display_window, project

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class EpochMillisecondsField(serializers.Field):
    """Render an aware datetime as integer milliseconds since the epoch."""

    def to_representation(self, value: datetime) -> int:
        return (value - EPOCH) // timedelta(milliseconds=1)


class TimelineGroupSerializer(serializers.Serializer):
    id = serializers.CharField()
    title = serializers.CharField()


class TimelineRowSerializer(serializers.Serializer):
    id = serializers.CharField()
    groupId = serializers.CharField(source="group_id")
    title = serializers.CharField()
    startTime = EpochMillisecondsField(source="start_time")
    endTime = EpochMillisecondsField(source="end_time")
    color = serializers.CharField()


class TimelineWindowSerializer(serializers.Serializer):
    start = EpochMillisecondsField()
    end = EpochMillisecondsField()
    today = EpochMillisecondsField()


def timeline_payload(
    issues: Sequence[Issue],
    users: Sequence[User],
    selected_user_id: str | None,
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> dict:
    """Project *issues* and *users* and render groups, rows and window."""
    groups, rows = project(issues, users, selected_user_id, tz)
    return {
        "groups": TimelineGroupSerializer(groups, many=True).data,
        "rows": TimelineRowSerializer(rows, many=True).data,
        "window": TimelineWindowSerializer(display_window(now, tz)).data,
        "selectedUserId": selected_user_id,
    }
