"""Per-type templates for registering external task sources.

Each template lists the auth types the upstream system supports, the config
keys it needs, and the mapping rules that fit its usual record shape. User
supplied mapping rules are layered on top of the template's defaults when a
source is registered.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from questlog.errors import ValidationError
from questlog.models.external_source import AuthType, ExternalSourceType, MappingRules


@dataclass(frozen=True)
class SourceTemplate:
    type: ExternalSourceType
    auth_types: Tuple[AuthType, ...]
    config_fields: Tuple[str, ...]
    mapping_rules: Dict[str, Any] = field(default_factory=dict)
    supported_endpoints: Tuple[str, ...] = ()

    def default_mapping_rules(self) -> MappingRules:
        return MappingRules.model_validate(self.mapping_rules)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "auth_types": [a.value for a in self.auth_types],
            "config_fields": list(self.config_fields),
            "default_mapping_rules": self.default_mapping_rules().model_dump(),
            "supported_endpoints": list(self.supported_endpoints),
        }


SOURCE_TEMPLATES: Dict[ExternalSourceType, SourceTemplate] = {
    ExternalSourceType.CALENDAR: SourceTemplate(
        type=ExternalSourceType.CALENDAR,
        auth_types=(AuthType.OAUTH2,),
        config_fields=("clientId", "clientSecret", "refreshToken"),
        mapping_rules={
            "titleField": "summary",
            "descriptionField": "description",
            "dueDateField": "start.dateTime",
            "defaultStats": ["Productivity"],
            "estimatedXpFormula": "25",
        },
        supported_endpoints=(
            "https://www.googleapis.com/calendar/v3",
            "https://outlook.office.com/api/v2.0",
        ),
    ),
    ExternalSourceType.PROJECT_MANAGEMENT: SourceTemplate(
        type=ExternalSourceType.PROJECT_MANAGEMENT,
        auth_types=(AuthType.OAUTH2, AuthType.API_KEY),
        config_fields=("apiKey", "workspaceId", "projectId"),
        mapping_rules={
            "titleField": "name",
            "descriptionField": "notes",
            "dueDateField": "due_on",
            "defaultStats": ["Project Management"],
            "estimatedXpFormula": "30",
        },
        supported_endpoints=(
            "https://app.asana.com/api/1.0",
            "https://api.trello.com/1",
        ),
    ),
    ExternalSourceType.FITNESS: SourceTemplate(
        type=ExternalSourceType.FITNESS,
        auth_types=(AuthType.OAUTH2, AuthType.API_KEY),
        config_fields=("accessToken", "userId"),
        mapping_rules={
            "titleField": "activity_name",
            "descriptionField": "description",
            "dueDateField": "date",
            "defaultStats": ["Health & Fitness"],
            "estimatedXpFormula": "duration * 2",
        },
        supported_endpoints=(
            "https://api.fitbit.com/1",
            "https://www.strava.com/api/v3",
        ),
    ),
    ExternalSourceType.NOTES: SourceTemplate(
        type=ExternalSourceType.NOTES,
        auth_types=(AuthType.OAUTH2, AuthType.API_KEY),
        config_fields=("apiKey", "notebookId"),
        mapping_rules={
            "titleField": "title",
            "descriptionField": "content",
            "dueDateField": "updated_at",
            "defaultStats": ["Learning"],
            "estimatedXpFormula": "15",
        },
        supported_endpoints=("https://api.notion.com/v1",),
    ),
    ExternalSourceType.HABITS: SourceTemplate(
        type=ExternalSourceType.HABITS,
        auth_types=(AuthType.API_KEY, AuthType.BASIC_AUTH),
        config_fields=("apiKey", "userId"),
        mapping_rules={
            "titleField": "name",
            "descriptionField": "description",
            "dueDateField": "date",
            "defaultStats": ["Self Development"],
            "estimatedXpFormula": "streak_count * 5",
        },
        supported_endpoints=("https://habitica.com/api/v3",),
    ),
    ExternalSourceType.TIME_TRACKING: SourceTemplate(
        type=ExternalSourceType.TIME_TRACKING,
        auth_types=(AuthType.OAUTH2, AuthType.API_KEY),
        config_fields=("apiKey", "workspaceId"),
        mapping_rules={
            "titleField": "description",
            "descriptionField": "project",
            "dueDateField": "date",
            "defaultStats": ["Productivity"],
            "estimatedXpFormula": "Math.floor(duration / 60) * 3",
        },
        supported_endpoints=(
            "https://api.track.toggl.com/api/v9",
            "https://api.clockify.me/api/v1",
        ),
    ),
}


def get_template(source_type: Any) -> SourceTemplate:
    """Template for a source type (enum or its string value)."""
    try:
        return SOURCE_TEMPLATES[ExternalSourceType(source_type)]
    except ValueError:
        raise ValidationError(f"Unknown external source type: {source_type}", field="type")


def list_templates() -> List[Dict[str, Any]]:
    return [template.to_dict() for template in SOURCE_TEMPLATES.values()]
