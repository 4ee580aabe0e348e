"""Character and CharacterStat data models for questlog."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class Character(BaseModel):
    """A user's character; owns the stat tracks."""

    id: str = Field(..., description="Unique character identifier")
    user_id: str = Field(..., description="Owning user (one character per user)")
    name: str = Field(..., description="Character name")
    character_class: Optional[str] = Field(None, description="Character class")
    created_at: datetime = Field(..., description="Creation timestamp")


class CharacterStat(BaseModel):
    """A named progression track.

    current_level and current_xp are cached values derived from total_xp.
    """

    id: str = Field(..., description="Unique stat identifier")
    character_id: str = Field(..., description="Owning character")
    category: str = Field(..., description="Stat category, unique per character")
    total_xp: int = Field(0, ge=0, description="Accumulated XP (authoritative)")
    current_level: int = Field(1, ge=1, description="Cached level derived from total_xp")
    current_xp: int = Field(0, ge=0, description="Cached XP within the current level")
    level_title: Optional[str] = Field(None, description="Title for the current level")
    updated_at: datetime = Field(..., description="Last update timestamp")
