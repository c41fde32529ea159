"""
Cron expression parser for host schedules.

Parses crontab expressions and computes next fire times with minute
resolution.

Cron support:
- Standard 5 fields: minute hour day month day_of_week
- 6 fields with a leading seconds field; it is validated and then ignored
  because schedules fire per minute
- Supported tokens per field: '*', '*/n', 'a', 'a,b,c', 'a-b', 'a-b/n'
- Month and day-of-week names (JAN-DEC, SUN-SAT), case-insensitive
- Day-of-week 7 is Sunday (same as 0)
- Day-of-month vs day-of-week semantics: if both are restricted (not '*'),
  then match if (dom matches OR dow matches). This matches traditional cron.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from fleetback.exceptions import InvalidInputError

# Feb 29 can be 8 years apart across a skipped century leap year (2096 -> 2104).
_SEARCH_LIMIT = timedelta(days=366 * 8 + 1)

_MONTH_NAMES = {
    name: i
    for i, name in enumerate(
        ["JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"], start=1
    )
}
_DOW_NAMES = {name: i for i, name in enumerate(["SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"])}


class CronParseError(InvalidInputError):
    pass


@dataclass(frozen=True)
class CronSpec:
    expr: str
    minutes: frozenset[int]
    hours: frozenset[int]
    dom: frozenset[int]  # 1-31
    months: frozenset[int]  # 1-12
    dow: frozenset[int]  # 0-6 (0=Sunday)
    dom_any: bool
    dow_any: bool

    def next_after(self, after: datetime) -> datetime:
        """
        First fire time strictly after ``after``, at minute resolution.

        Raises:
            CronParseError: If no fire time exists within the search window (e.g. "0 0 31 2 *")
        """
        cursor = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        return _find_next_match(self, cursor)


def parse_cron(expr: str) -> CronSpec:
    """
    Parse a 5- or 6-field cron expression.

    Raises:
        CronParseError: If the expression is malformed
    """
    parts = [p for p in expr.strip().split() if p]
    if len(parts) == 6:
        # Leading seconds field
        _parse_field(parts[0], min_v=0, max_v=59)
        parts = parts[1:]
    if len(parts) != 5:
        raise CronParseError(f"cron must have 5 fields (or 6 with seconds), got {len(parts)}: {expr!r}")

    spec = CronSpec(
        expr=expr.strip(),
        minutes=frozenset(_parse_field(parts[0], min_v=0, max_v=59)),
        hours=frozenset(_parse_field(parts[1], min_v=0, max_v=23)),
        dom=frozenset(_parse_field(parts[2], min_v=1, max_v=31)),
        months=frozenset(_parse_field(parts[3], min_v=1, max_v=12, names=_MONTH_NAMES)),
        dow=frozenset(_parse_field(parts[4], min_v=0, max_v=6, allow_7_as_0=True, names=_DOW_NAMES)),
        dom_any=parts[2] == "*",
        dow_any=parts[4] == "*",
    )
    # Reject expressions that can never fire (e.g. Feb 30th) up front.
    spec.next_after(datetime(2000, 1, 1))
    return spec


def _find_next_match(spec: CronSpec, cursor: datetime) -> datetime:
    limit = cursor + _SEARCH_LIMIT
    cur = cursor

    while cur <= limit:
        if cur.month not in spec.months:
            cur = _next_month(cur)
            continue
        if not _dom_or_dow_match(spec, cur):
            cur = (cur + timedelta(days=1)).replace(hour=0, minute=0)
            continue
        if cur.hour not in spec.hours:
            cur = (cur + timedelta(hours=1)).replace(minute=0)
            continue
        if cur.minute not in spec.minutes:
            cur = cur + timedelta(minutes=1)
            continue
        return cur

    raise CronParseError(f"cron expression {spec.expr!r} produced no fire time within {_SEARCH_LIMIT.days} days")


def _next_month(dt: datetime) -> datetime:
    return (dt.replace(day=1, hour=0, minute=0) + timedelta(days=32)).replace(day=1)


def _dom_or_dow_match(spec: CronSpec, dt: datetime) -> bool:
    dom_match = dt.day in spec.dom
    # Python: Monday=0..Sunday=6; cron: Sunday=0..Saturday=6
    cron_dow = (dt.weekday() + 1) % 7
    dow_match = cron_dow in spec.dow

    if spec.dom_any and spec.dow_any:
        return True
    if spec.dom_any:
        return dow_match
    if spec.dow_any:
        return dom_match
    # Both restricted -> OR semantics
    return dom_match or dow_match


def _parse_field(
    token: str,
    *,
    min_v: int,
    max_v: int,
    allow_7_as_0: bool = False,
    names: dict[str, int] | None = None,
) -> set[int]:
    token = token.strip()
    if token == "*":
        return set(range(min_v, max_v + 1))

    values: set[int] = set()
    for part in token.split(","):
        part = part.strip()
        if not part:
            continue
        step = 1
        if "/" in part:
            base, step_s = part.split("/", 1)
            step_s = step_s.strip()
            if not step_s.isdigit() or int(step_s) == 0:
                raise CronParseError(f"invalid step in field: {token!r}")
            step = int(step_s)
            part = base.strip()

        if part == "*":
            values.update(range(min_v, max_v + 1, step))
            continue

        if "-" in part:
            a_s, b_s = part.split("-", 1)
            a, b = _to_int(a_s, names), _to_int(b_s, names)
            if a is None or b is None:
                raise CronParseError(f"invalid range in field: {token!r}")
            upper = 7 if allow_7_as_0 else max_v
            if a > b:
                raise CronParseError(f"range start > end in field: {token!r}")
            if a < min_v or b > upper:
                raise CronParseError(f"range out of bounds in field: {token!r}")
            # 7 (Sunday) folds onto 0 after expansion, so "5-7" is Fri, Sat, Sun
            values.update(0 if allow_7_as_0 and v == 7 else v for v in range(a, b + 1, step))
            continue

        v = _to_int(part, names)
        if v is None:
            raise CronParseError(f"invalid value in field: {token!r}")
        if allow_7_as_0 and v == 7:
            v = 0
        if v < min_v or v > max_v:
            raise CronParseError(f"value out of bounds in field: {token!r}")
        values.add(v)

    if not values:
        raise CronParseError(f"empty field: {token!r}")
    return values


def _to_int(value: str, names: dict[str, int] | None) -> int | None:
    value = value.strip()
    if value.isdigit():
        return int(value)
    if names:
        return names.get(value.upper())
    return None
