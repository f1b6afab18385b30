"""Typed Linear records and the serializers that validate raw GraphQL nodes.

Every node coming back from the Linear API goes through one of the
serializers below before the rest of the application sees it. A node that
does not validate is rejected as a whole; optional fields are normalized
here (sentinel workflow state, ``displayName`` falling back to ``name``)
so downstream code never has to guess.

The same serializers render the records back to the camelCase JSON shape
the front end consumes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from rest_framework import serializers

UNKNOWN_STATE_ID = "unknown"
UNKNOWN_STATE_NAME = "Unknown"
DEFAULT_VIEWER_NAME = "Linear User"


@dataclass(frozen=True, slots=True)
class WorkflowState:
    id: str
    name: str
    color: str | None = None


UNKNOWN_STATE = WorkflowState(id=UNKNOWN_STATE_ID, name=UNKNOWN_STATE_NAME)


@dataclass(frozen=True, slots=True)
class User:
    id: str
    name: str
    display_name: str
    avatar_url: str | None = None


@dataclass(frozen=True, slots=True)
class Issue:
    id: str
    title: str
    identifier: str
    state: WorkflowState
    created_at: datetime
    updated_at: datetime
    url: str
    description: str | None = None
    priority: int | None = None
    assignee: User | None = None
    started_at: datetime | None = None
    due_date: date | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Viewer:
    """The signed-in Linear user, as returned by ``viewer { ... }``."""

    id: str
    name: str
    email: str | None = None
    avatar_url: str | None = None


def _text(**kwargs):
    # Text fields keep surrounding whitespace exactly as Linear sent it.
    return serializers.CharField(trim_whitespace=False, **kwargs)


def _optional_text(**kwargs):
    return _text(required=False, allow_null=True, allow_blank=True, **kwargs)


class WorkflowStateSerializer(serializers.Serializer):
    id = _text()
    name = _text(allow_blank=True)
    color = _optional_text()

    def create(self, validated_data) -> WorkflowState:
        return WorkflowState(
            id=validated_data["id"],
            name=validated_data["name"],
            color=validated_data.get("color") or None,
        )


class UserSerializer(serializers.Serializer):
    id = _text()
    name = _text(allow_blank=True)
    displayName = _optional_text(source="display_name")
    avatarUrl = _optional_text(source="avatar_url")

    def create(self, validated_data) -> User:
        return User(
            id=validated_data["id"],
            name=validated_data["name"],
            display_name=validated_data.get("display_name") or validated_data["name"],
            avatar_url=validated_data.get("avatar_url") or None,
        )


class IssueSerializer(serializers.Serializer):
    id = _text()
    title = _text(allow_blank=True)
    identifier = _text()
    description = _optional_text()
    priority = serializers.IntegerField(required=False, allow_null=True)
    state = WorkflowStateSerializer(required=False, allow_null=True)
    assignee = UserSerializer(required=False, allow_null=True)
    startedAt = serializers.DateTimeField(source="started_at", required=False, allow_null=True)
    dueDate = serializers.DateField(source="due_date", required=False, allow_null=True)
    completedAt = serializers.DateTimeField(source="completed_at", required=False, allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at")
    updatedAt = serializers.DateTimeField(source="updated_at")
    url = _text()

    def create(self, validated_data) -> Issue:
        state = validated_data.get("state")
        assignee = validated_data.get("assignee")
        return Issue(
            id=validated_data["id"],
            title=validated_data["title"],
            identifier=validated_data["identifier"],
            description=validated_data.get("description") or None,
            priority=validated_data.get("priority"),
            state=WorkflowStateSerializer().create(state) if state else UNKNOWN_STATE,
            assignee=UserSerializer().create(assignee) if assignee else None,
            started_at=validated_data.get("started_at"),
            due_date=validated_data.get("due_date"),
            completed_at=validated_data.get("completed_at"),
            created_at=validated_data["created_at"],
            updated_at=validated_data["updated_at"],
            url=validated_data["url"],
        )


class ViewerSerializer(serializers.Serializer):
    id = _text()
    name = _optional_text()
    email = _optional_text()
    avatarUrl = _optional_text(source="avatar_url")

    def create(self, validated_data) -> Viewer:
        return Viewer(
            id=validated_data["id"],
            name=validated_data.get("name") or DEFAULT_VIEWER_NAME,
            email=validated_data.get("email") or None,
            avatar_url=validated_data.get("avatar_url") or None,
        )
