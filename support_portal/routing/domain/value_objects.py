"""
Routing Value Objects
=====================

Slack channel directory and the router that decides which channels hear
about a ticket event.

The directory is built once from configuration and injected; the router
never reads the environment itself.
"""

import re
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from support_portal.config import Department, PriorityTier, SLAState, read_slack_channel_env
from support_portal.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

URGENT_CHANNEL = "URGENT"
ESCALATION_CHANNEL = "ESCALATION"
SLA_BREACH_CHANNEL = "SLA_BREACH"
FALLBACK_CHANNEL = "ID"
CX_SUBTEAM_PREFIX = "CX_"

ESCALATED_STATUS = "Escalated"
URGENT_TIERS = frozenset({"urgent", PriorityTier.CRITICAL.value.lower()})

_WHITESPACE = re.compile(r"\s+")


def channel_key(name: str) -> str:
    """``"Seller Support"`` -> ``"SELLER_SUPPORT"``."""
    return _WHITESPACE.sub("_", name.strip()).upper()


class ChannelDirectory(BaseModel):
    """Immutable symbolic-name -> Slack channel id lookup."""

    model_config = ConfigDict(frozen=True)

    channels: Dict[str, str] = Field(default_factory=dict)

    @field_validator("channels", mode="before")
    @classmethod
    def normalise_keys(cls, v):
        return {channel_key(str(key)): value for key, value in dict(v or {}).items() if value}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ChannelDirectory":
        return cls(channels=read_slack_channel_env(environ))

    def get(self, name: str) -> Optional[str]:
        return self.channels.get(channel_key(name))

    @property
    def fallback(self) -> Optional[str]:
        return self.channels.get(FALLBACK_CHANNEL)

    def department_channel(self, department: Optional[str], owner_team: Optional[str] = None) -> Optional[str]:
        """
        CX tickets with an owner team prefer the team's own channel, then
        every department falls back to its department channel.
        """
        if department == Department.CX.value and owner_team:
            team_channel = self.get(CX_SUBTEAM_PREFIX + owner_team)
            if team_channel:
                return team_channel
        if not department:
            return None
        return self.get(department)

    def channel_name(self, channel_id: str) -> str:
        """Human-readable name for logs, e.g. ``#sla-breach``; unknown ids pass through."""
        for name, value in self.channels.items():
            if value == channel_id:
                return "#" + name.lower().replace("_", "-")
        return channel_id


class NotificationContext(BaseModel):
    """Ticket facts the router decides on."""

    model_config = ConfigDict(frozen=True)

    department: str = ""
    priority_tier: Optional[str] = None
    status: Optional[str] = None
    is_escalated: bool = False
    sla_status: Optional[str] = None
    owner_team: Optional[str] = None

    @classmethod
    def from_ticket(cls, ticket: Any, **overrides) -> "NotificationContext":
        values = {
            "department": getattr(ticket, "department", None) or "",
            "priority_tier": getattr(ticket, "priority_tier", None),
            "status": getattr(ticket, "status", None),
            "is_escalated": bool(getattr(ticket, "is_escalated", False)),
            "sla_status": getattr(ticket, "sla_status", None),
            "owner_team": getattr(ticket, "owner_team", None),
        }
        values.update(overrides)
        for key in ("priority_tier", "status", "sla_status"):
            # Enum members carry their value
            values[key] = getattr(values[key], "value", values[key])
        return cls(**values)


class NotificationRouter:
    """
    Decides the Slack channels for a ticket event.

    Rules are additive and evaluated in order: department, urgent,
    escalation, SLA breach. The fallback channel is used only when no rule
    produced a channel. Channels are deduplicated by id, first seen wins.
    """

    def __init__(self, directory: Optional[ChannelDirectory] = None):
        self._directory = directory or ChannelDirectory()

    @property
    def directory(self) -> ChannelDirectory:
        return self._directory

    def channels_for(self, context: NotificationContext) -> List[str]:
        channels: List[str] = []

        def add(channel_id: Optional[str]) -> None:
            if channel_id and channel_id not in channels:
                channels.append(channel_id)

        add(self._directory.department_channel(context.department, context.owner_team))

        if context.priority_tier and context.priority_tier.lower() in URGENT_TIERS:
            add(self._directory.get(URGENT_CHANNEL))

        if context.is_escalated or context.status == ESCALATED_STATUS:
            add(self._directory.get(ESCALATION_CHANNEL))

        if context.sla_status and context.sla_status.lower() == SLAState.BREACHED.value:
            add(self._directory.get(SLA_BREACH_CHANNEL))

        if not channels:
            add(self._directory.fallback)

        logger.info(
            "Routing decision",
            extra={
                "department": context.department,
                "owner_team": context.owner_team,
                "priority_tier": context.priority_tier,
                "status": context.status,
                "sla_status": context.sla_status,
                "channels": self.channel_names(channels),
                "channel_count": len(channels),
            }
        )
        return channels

    def channel_names(self, channels: List[str]) -> List[str]:
        return [self._directory.channel_name(channel) for channel in channels]
