"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared between requests.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Sequence, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from support_portal.config import ALL_DEPARTMENTS, SLAState
from support_portal.core import ValidationException


class SLAConfiguration(BaseModel):
    """
    One SLA configuration row.

    Matches tickets by category and by department (or the "All" wildcard).
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    category_id: str
    department: str = ALL_DEPARTMENTS
    response_hours: Optional[float] = Field(default=None, gt=0)
    resolution_hours: float = Field(gt=0)
    use_business_hours: bool = False
    is_active: bool = True


class BusinessCalendar(BaseModel):
    """
    Working days and opening hours used for business-hours SLAs.

    Weekdays follow ``datetime.weekday()`` (Monday is 0).
    """
    model_config = ConfigDict(frozen=True)

    timezone: str = Field(default="UTC", description="IANA zone the hours are expressed in")
    workdays: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    open_hour: int = Field(default=9, ge=0, le=23)
    close_hour: int = Field(default=18, ge=1, le=24)
    holidays: List[date] = Field(default_factory=list)

    @field_validator("workdays")
    @classmethod
    def validate_workdays(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("at least one workday is required")
        if any(day < 0 or day > 6 for day in v):
            raise ValueError("workdays must be between 0 (Monday) and 6 (Sunday)")
        return sorted(set(v))

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {v}") from e
        return v

    @model_validator(mode="after")
    def check_hours(self) -> "BusinessCalendar":
        if self.close_hour <= self.open_hour:
            raise ValueError("close_hour must be after open_hour")
        return self

    def is_business_day(self, day: date) -> bool:
        return day.weekday() in self.workdays and day not in self.holidays

    def _day_bounds(self, moment: datetime) -> tuple[datetime, datetime]:
        midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
        return (
            midnight + timedelta(hours=self.open_hour),
            midnight + timedelta(hours=self.close_hour),
        )

    def _next_opening(self, moment: datetime) -> datetime:
        """First business-open instant at or after ``moment``."""
        current = moment
        # A full year without a business day means the calendar is unusable
        for _ in range(366):
            opening, closing = self._day_bounds(current)
            if self.is_business_day(current.date()) and current < closing:
                return max(current, opening)
            current = opening.replace(hour=0) + timedelta(days=1)
        raise ValidationException("Business calendar has no business days within a year")

    def add_business_hours(self, start: datetime, hours: float) -> datetime:
        """
        Walk forward from ``start`` counting only open business time.

        Aware datetimes are evaluated in the calendar's timezone and returned
        in the original timezone; naive datetimes are taken as calendar-local.
        """
        original_tz = start.tzinfo
        local = start.astimezone(ZoneInfo(self.timezone)) if original_tz else start

        remaining = timedelta(hours=hours)
        current = self._next_opening(local)
        while remaining > timedelta(0):
            _, closing = self._day_bounds(current)
            available = closing - current
            if remaining <= available:
                current = current + remaining
                break
            remaining -= available
            current = self._next_opening(closing)

        return current.astimezone(original_tz) if original_tz else current


class SLAPolicy(BaseModel):
    """Fallbacks and thresholds that apply when no configuration row does."""
    model_config = ConfigDict(frozen=True)

    fallback_resolution_hours: float = Field(default=24, gt=0)
    warning_threshold_percent: int = Field(default=15, ge=0, le=100)


@dataclass(frozen=True)
class SLATargets:
    """Deadlines derived for one ticket."""
    response_target: Optional[datetime]
    resolve_target: datetime
    used_business_hours: bool
    configuration: Optional[SLAConfiguration] = None

    @property
    def response_hours(self) -> Optional[float]:
        return self.configuration.response_hours if self.configuration else None

    @property
    def resolution_hours(self) -> Optional[float]:
        return self.configuration.resolution_hours if self.configuration else None


class SLACalculator:
    """
    Pure SLA calculations.

    Stateless apart from the injected calendar and policy, so a single
    instance can be shared across concurrent requests.
    """

    def __init__(
        self,
        calendar: Optional[BusinessCalendar] = None,
        policy: Optional[SLAPolicy] = None,
    ):
        self._calendar = calendar or BusinessCalendar()
        self._policy = policy or SLAPolicy()

    @property
    def policy(self) -> SLAPolicy:
        return self._policy

    @staticmethod
    def coerce_timestamp(value: Union[datetime, str, None], field_name: str = "created_at") -> datetime:
        """
        Accept a datetime or ISO-8601 string and return an aware datetime.

        Naive values are taken as UTC, matching how stored timestamps are
        read back. A trailing ``Z`` is accepted.

        Raises:
            ValidationException: for anything that is not a valid timestamp
        """
        if isinstance(value, str):
            text = value.strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            try:
                value = datetime.fromisoformat(text)
            except ValueError as e:
                raise ValidationException(
                    f"{field_name} is not a valid ISO-8601 timestamp",
                    {"field": field_name, "value": value},
                ) from e
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value
        raise ValidationException(
            f"{field_name} must be a timestamp",
            {"field": field_name, "value": repr(value)},
        )

    @staticmethod
    def select_configuration(
        category_id: Optional[str],
        department: Optional[str],
        configurations: Sequence[SLAConfiguration],
    ) -> Optional[SLAConfiguration]:
        """
        Pick the active row for a category, preferring a department-specific
        row over the "All" wildcard. Ties keep input order.
        """
        if not category_id:
            return None
        wildcard = None
        for config in configurations:
            if not config.is_active or config.category_id != category_id:
                continue
            if department is not None and config.department == department:
                return config
            if wildcard is None and config.department == ALL_DEPARTMENTS:
                wildcard = config
        return wildcard

    def _add_hours(self, start: datetime, hours: float, business_hours: bool) -> datetime:
        if business_hours:
            return self._calendar.add_business_hours(start, hours)
        return start + timedelta(hours=hours)

    def compute_targets(
        self,
        created_at: Union[datetime, str],
        category_id: Optional[str],
        department: Optional[str],
        configurations: Sequence[SLAConfiguration] = (),
    ) -> SLATargets:
        """
        Derive response and resolution deadlines for a ticket.

        Without a matching configuration the resolution target falls back to
        ``fallback_resolution_hours`` wall-clock hours and there is no
        response target.

        Raises:
            ValidationException: if ``created_at`` is not a valid timestamp
        """
        created = self.coerce_timestamp(created_at)
        config = self.select_configuration(category_id, department, configurations)

        if config is None:
            return SLATargets(
                response_target=None,
                resolve_target=created + timedelta(hours=self._policy.fallback_resolution_hours),
                used_business_hours=False,
            )

        business = config.use_business_hours
        response_target = None
        if config.response_hours is not None:
            response_target = self._add_hours(created, config.response_hours, business)

        return SLATargets(
            response_target=response_target,
            resolve_target=self._add_hours(created, config.resolution_hours, business),
            used_business_hours=business,
            configuration=config,
        )

    def evaluate_status(
        self,
        created_at: datetime,
        deadline: Optional[datetime],
        current_time: datetime,
        met_at: Optional[datetime] = None,
    ) -> SLAState:
        """
        Calculate current SLA state for one deadline.

        Args:
            created_at: When ticket was created
            deadline: The SLA deadline (None means nothing to track)
            current_time: Current time for evaluation
            met_at: When the SLA was met (first response/resolution)
        """
        if deadline is None:
            return SLAState.MET if met_at else SLAState.ON_TRACK

        if met_at and met_at <= deadline:
            return SLAState.MET

        remaining = (deadline - current_time).total_seconds()
        total = (deadline - created_at).total_seconds()
        percentage = (remaining / total) * 100 if total > 0 else 0

        if remaining <= 0:
            return SLAState.BREACHED
        if percentage <= self._policy.warning_threshold_percent:
            return SLAState.AT_RISK
        return SLAState.ON_TRACK

    @staticmethod
    def most_urgent(*states: SLAState) -> SLAState:
        """Collapse per-clock states into one ticket-level state."""
        if SLAState.BREACHED in states:
            return SLAState.BREACHED
        if SLAState.AT_RISK in states:
            return SLAState.AT_RISK
        if states and all(state == SLAState.MET for state in states):
            return SLAState.MET
        return SLAState.ON_TRACK
