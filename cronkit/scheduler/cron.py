"""
Cron expression engine — parse five-field expressions and match instants.

Usage:
    schedule = parse("*/15 9-17 * * 1-5")
    schedule.is_due(datetime(2026, 3, 2, 9, 30))      # True (a Monday)
    schedule.next_after(datetime(2026, 3, 2, 9, 31))  # 09:45 same day

Fields: minute hour day-of-month month day-of-week (0=Sunday).
Per-field grammar: "*", "*/N", "A", "A-B", "A-B/N", "A/N" and comma
lists of those.

Day-of-month and day-of-week are ORed when both are restricted and
ANDed otherwise. A field counts as unrestricted when it is a single
"*" or "*/N" term, the same rule classic cron applies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from cronkit.core.errors import ParseError, ScheduleExhaustedError

SCAN_LIMIT_DAYS = 4 * 366  # next_after gives up after ~4 years


class FieldKind(str, Enum):
    """Shape of a parsed field."""

    WILDCARD = "wildcard"
    VALUES = "values"
    RANGE = "range"
    STEP = "step"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Name and inclusive domain of one cron field."""

    name: str
    minimum: int
    maximum: int


MINUTE = FieldSpec("minute", 0, 59)
HOUR = FieldSpec("hour", 0, 23)
DAY_OF_MONTH = FieldSpec("day-of-month", 1, 31)
MONTH = FieldSpec("month", 1, 12)
DAY_OF_WEEK = FieldSpec("day-of-week", 0, 6)

FIELD_SPECS = (MINUTE, HOUR, DAY_OF_MONTH, MONTH, DAY_OF_WEEK)


@dataclass(frozen=True, slots=True)
class CronTerm:
    """One comma-separated element of a field."""

    start: int
    end: int
    step: int = 1
    star: bool = False  # came from "*" or "*/N"

    def matches(self, value: int) -> bool:
        return self.start <= value <= self.end and (value - self.start) % self.step == 0

    def format(self) -> str:
        if self.star:
            return "*" if self.step == 1 else f"*/{self.step}"
        if self.start == self.end:
            return str(self.start)
        text = f"{self.start}-{self.end}"
        return text if self.step == 1 else f"{text}/{self.step}"


@dataclass(frozen=True, slots=True)
class CronField:
    """A parsed field: its domain, its terms and the values they expand to."""

    spec: FieldSpec
    terms: tuple[CronTerm, ...]
    values: frozenset[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        expanded = frozenset(
            v
            for term in self.terms
            for v in range(term.start, term.end + 1, term.step)
        )
        object.__setattr__(self, "values", expanded)

    @property
    def kind(self) -> FieldKind:
        if len(self.terms) != 1:
            return FieldKind.VALUES
        term = self.terms[0]
        if term.step > 1:
            return FieldKind.STEP
        if term.star:
            return FieldKind.WILDCARD
        if term.start != term.end:
            return FieldKind.RANGE
        return FieldKind.VALUES

    @property
    def restricted(self) -> bool:
        """False for a lone "*" or "*/N" term."""
        return not (len(self.terms) == 1 and self.terms[0].star)

    def matches(self, value: int) -> bool:
        return value in self.values

    def format(self) -> str:
        return ",".join(term.format() for term in self.terms)


@dataclass(frozen=True, slots=True)
class Schedule:
    """
    Immutable parse result of a five-field cron expression.

    Equality compares the parsed fields, not the original text.
    """

    minute: CronField
    hour: CronField
    day_of_month: CronField
    month: CronField
    day_of_week: CronField
    expression: str = field(default="", compare=False)

    @property
    def fields(self) -> tuple[CronField, ...]:
        return (self.minute, self.hour, self.day_of_month, self.month, self.day_of_week)

    def to_expression(self) -> str:
        """Canonical text; re-parses to a schedule with the same due-set."""
        return " ".join(f.format() for f in self.fields)

    def day_matches(self, instant: datetime) -> bool:
        dom = self.day_of_month.matches(instant.day)
        dow = self.day_of_week.matches(instant.isoweekday() % 7)
        if self.day_of_month.restricted and self.day_of_week.restricted:
            return dom or dow
        return dom and dow

    def is_due(self, instant: datetime) -> bool:
        """True if the minute containing *instant* matches every field."""
        return (
            self.minute.matches(instant.minute)
            and self.hour.matches(instant.hour)
            and self.month.matches(instant.month)
            and self.day_matches(instant)
        )

    def next_after(self, instant: datetime) -> datetime:
        """
        First due minute strictly after *instant*.

        Jumps whole months, days and hours when the coarser field cannot
        match, so even sparse schedules resolve in a few thousand steps.
        The result keeps *instant*'s tzinfo (wall-clock arithmetic).

        Raises:
            ScheduleExhaustedError: nothing matches within ~4 years,
                e.g. "0 0 30 2 *".
        """
        candidate = instant.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = candidate + timedelta(days=SCAN_LIMIT_DAYS)

        while candidate <= limit:
            if not self.month.matches(candidate.month):
                if candidate.month == 12:
                    candidate = candidate.replace(
                        year=candidate.year + 1, month=1, day=1, hour=0, minute=0
                    )
                else:
                    candidate = candidate.replace(
                        month=candidate.month + 1, day=1, hour=0, minute=0
                    )
                continue
            if not self.day_matches(candidate):
                candidate = (candidate + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if not self.hour.matches(candidate.hour):
                candidate = (candidate + timedelta(hours=1)).replace(minute=0)
                continue
            if not self.minute.matches(candidate.minute):
                candidate += timedelta(minutes=1)
                continue
            return candidate

        raise ScheduleExhaustedError(
            f"Cron expression {self.to_expression()!r} never fires within "
            f"{SCAN_LIMIT_DAYS} days after {instant.isoformat()}",
            details={"expression": self.expression or self.to_expression()},
        )

    def __str__(self) -> str:
        return self.expression or self.to_expression()


# ━━━ Public API ━━━


def parse(text: str) -> Schedule:
    """
    Parse a five-field cron expression.

    Raises:
        ParseError: wrong field count, out-of-domain value, inverted
            range, zero step or a token that is not a number.
    """
    if not isinstance(text, str):
        raise ParseError(f"Cron expression must be a string, got {type(text).__name__}")

    parts = text.split()
    if len(parts) != 5:
        raise ParseError(
            f"Cron expression must have exactly 5 fields "
            f"(minute hour day-of-month month day-of-week), got {len(parts)}: {text!r}",
            details={"expression": text},
        )

    fields = [_parse_field(part, spec) for part, spec in zip(parts, FIELD_SPECS)]
    return Schedule(*fields, expression=" ".join(parts))


def is_valid(text: str) -> bool:
    try:
        parse(text)
    except ParseError:
        return False
    return True


def is_due(schedule: Schedule, instant: datetime) -> bool:
    return schedule.is_due(instant)


def next_fire_after(schedule: Schedule, instant: datetime) -> datetime:
    return schedule.next_after(instant)


# ━━━ Internal Helpers ━━━


def _parse_field(text: str, spec: FieldSpec) -> CronField:
    terms = []
    for token in text.split(","):
        if not token:
            raise ParseError(
                f"Empty list element in {spec.name} field: {text!r}",
                field=spec.name,
                token=text,
            )
        terms.append(_parse_term(token, spec))
    return CronField(spec=spec, terms=tuple(terms))


def _parse_term(token: str, spec: FieldSpec) -> CronTerm:
    body, slash, step_text = token.partition("/")
    step = 1
    if slash:
        step = _parse_number(step_text, spec, token)
        if step < 1:
            raise ParseError(
                f"Step must be at least 1 in {spec.name} field: {token!r}",
                field=spec.name,
                token=token,
            )

    if body == "*":
        return CronTerm(spec.minimum, spec.maximum, step, star=True)

    if "-" in body:
        low_text, _, high_text = body.partition("-")
        low = _parse_value(low_text, spec, token)
        high = _parse_value(high_text, spec, token)
        if low > high:
            raise ParseError(
                f"Invalid range in {spec.name} field: {token!r} (start after end)",
                field=spec.name,
                token=token,
            )
        return CronTerm(low, high, step)

    value = _parse_value(body, spec, token)
    if slash:
        # "A/N" means "A-max/N"
        return CronTerm(value, spec.maximum, step)
    return CronTerm(value, value)


def _parse_value(text: str, spec: FieldSpec, token: str) -> int:
    value = _parse_number(text, spec, token)
    if not spec.minimum <= value <= spec.maximum:
        raise ParseError(
            f"Value {value} out of range for {spec.name} field "
            f"({spec.minimum}-{spec.maximum}): {token!r}",
            field=spec.name,
            token=token,
        )
    return value


def _parse_number(text: str, spec: FieldSpec, token: str) -> int:
    if not (text.isascii() and text.isdigit()):
        raise ParseError(
            f"Invalid {spec.name} field: {token!r}",
            field=spec.name,
            token=token,
        )
    return int(text)
