"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Mapping, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="support-portal", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/support_portal",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Policy Configuration ==========
    policy_config_path: Path = Field(
        default=Path("policy_config.yaml"),
        description="Path to the role/priority/calendar policy YAML file"
    )
    sla_evaluation_interval: int = Field(
        default=300,
        description="Seconds between SLA status sweeps (0 disables the sweep)",
        ge=0
    )

    # ========== Slack Integration ==========
    slack_bot_token: Optional[str] = Field(
        default=None,
        description="Slack bot token for the Web API"
    )
    slack_api_url: str = Field(
        default="https://slack.com/api",
        description="Slack Web API base URL"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )
    app_url: str = Field(
        default="http://localhost:5173",
        description="Portal base URL used in Slack ticket links"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


SLACK_CHANNEL_PREFIX = "SLACK_CHANNEL_"
SLACK_FALLBACK_CHANNEL_VAR = "SLACK_CHANNEL_ID"


def read_slack_channel_env(environ: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """
    Collect ``SLACK_CHANNEL_*`` variables into a symbolic-name mapping.

    ``SLACK_CHANNEL_OPERATIONS=C123`` becomes ``{"OPERATIONS": "C123"}``;
    ``SLACK_CHANNEL_ID`` is the global fallback and is returned under ``"ID"``.
    """
    environ = os.environ if environ is None else environ
    channels = {}
    for key, value in environ.items():
        if key.upper().startswith(SLACK_CHANNEL_PREFIX) and value:
            channels[key.upper()[len(SLACK_CHANNEL_PREFIX):]] = value
    return channels


# ========== Constants ==========

class Role(str, Enum):
    """Closed set of staff roles. Roles do not inherit from each other."""
    OWNER = "Owner"
    ADMIN = "Admin"
    HEAD = "Head"
    MANAGER = "Manager"
    LEAD = "Lead"
    ASSOCIATE = "Associate"
    AGENT = "Agent"


class Department(str, Enum):
    """Departments tickets are routed to."""
    FINANCE = "Finance"
    OPERATIONS = "Operations"
    MARKETPLACE = "Marketplace"
    TECH = "Tech"
    EXPERIENCE = "Experience"
    CX = "CX"
    SELLER_SUPPORT = "Seller Support"


ALL_DEPARTMENTS = "All"


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    NEW = "New"
    OPEN = "Open"
    PENDING = "Pending"
    SOLVED = "Solved"
    CLOSED = "Closed"


class IssueType(str, Enum):
    """Top level of the category tree."""
    COMPLAINT = "Complaint"
    REQUEST = "Request"
    INFORMATION = "Information"


class GmvTier(str, Enum):
    """Vendor GMV tiers in ascending threshold order."""
    S = "S"
    BRONZE = "Bronze"
    M = "M"
    SILVER = "Silver"
    L = "L"
    XL = "XL"
    GOLD = "Gold"
    PLATINUM = "Platinum"


class PriorityTier(str, Enum):
    """Priority tiers, highest first."""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class PriorityBadge(str, Enum):
    """Short codes, one per tier."""
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


class SLAState(str, Enum):
    """SLA status states."""
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"
    MET = "met"


class NotificationType(str, Enum):
    """In-app notification types."""
    CASE_CREATED = "case_created"
    COMMENT_MENTION = "comment_mention"
    COMMENT_ADDED = "comment_added"
    TICKET_ASSIGNED = "ticket_assigned"
    TICKET_SOLVED = "ticket_solved"


# ========== Lists for validation ==========

GMV_TIER_ORDER = list(GmvTier)
TIER_BADGES = {
    PriorityTier.CRITICAL: PriorityBadge.P0,
    PriorityTier.HIGH: PriorityBadge.P1,
    PriorityTier.MEDIUM: PriorityBadge.P2,
    PriorityTier.LOW: PriorityBadge.P3,
}
VALID_STATUSES = [status.value for status in TicketStatus]
OPEN_STATUSES = [TicketStatus.NEW, TicketStatus.OPEN, TicketStatus.PENDING]
