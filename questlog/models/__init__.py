"""Data models for questlog."""

from questlog.models.task import Task, TaskCompletion, TaskStatus, TaskSource, DASHBOARD_SOURCES
from questlog.models.character import Character, CharacterStat
from questlog.models.container import Quest, Experiment, ContainerKind, ContainerStatus, ContainerProgress
from questlog.models.external_source import (
    ExternalTaskSource,
    ExternalTaskIntegration,
    ExternalSourceType,
    AuthType,
    IntegrationStatus,
    MappingRules,
)

__all__ = [
    "Task",
    "TaskCompletion",
    "TaskStatus",
    "TaskSource",
    "DASHBOARD_SOURCES",
    "Character",
    "CharacterStat",
    "Quest",
    "Experiment",
    "ContainerKind",
    "ContainerStatus",
    "ContainerProgress",
    "ExternalTaskSource",
    "ExternalTaskIntegration",
    "ExternalSourceType",
    "AuthType",
    "IntegrationStatus",
    "MappingRules",
]
