"""
Segment matching: translate a list of SegmentRule into a SQLAlchemy filter.

Rules are always combined with AND. An empty rule list matches nobody.
Values arrive as strings and are coerced per field; a value that cannot be
coerced turns its rule into an always-false predicate instead of raising.
"""
import operator
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import and_, false, func
from sqlalchemy.orm import Session

from app.models.customer import Customer
from app.schemas.segment_rule import SegmentField, SegmentOperator, SegmentRule
from app.utils.time import utcnow


_COLUMNS = {
    SegmentField.total_spent: Customer.total_spent,
    SegmentField.visit_count: Customer.visit_count,
    SegmentField.last_visit: Customer.last_visit,
    SegmentField.status: Customer.status,
    SegmentField.location: Customer.location,
    SegmentField.email_verified: Customer.email_verified,
}

_OPERATORS = {
    SegmentOperator.gt: operator.gt,
    SegmentOperator.lt: operator.lt,
    SegmentOperator.gte: operator.ge,
    SegmentOperator.lte: operator.le,
    SegmentOperator.eq: operator.eq,
}

_TRUE_VALUES = {"true", "1", "yes", "y"}
_FALSE_VALUES = {"false", "0", "no", "n"}


class _Unmatchable(Exception):
    pass


def _as_decimal(value: str) -> Decimal:
    try:
        d = Decimal(value.strip())
    except (InvalidOperation, AttributeError):
        raise _Unmatchable(value)
    if not d.is_finite():
        raise _Unmatchable(value)
    return d


def _as_int(value: str) -> int:
    # "5" and "5.0" are both five; "5.5" is not a count
    d = _as_decimal(value)
    if d != d.to_integral_value():
        raise _Unmatchable(value)
    return int(d)


def _as_bool(value: str) -> bool:
    v = (value or "").strip().lower()
    if v in _TRUE_VALUES:
        return True
    if v in _FALSE_VALUES:
        return False
    raise _Unmatchable(value)


def _as_timestamp(value: str, now: datetime) -> datetime:
    v = (value or "").strip()

    # "30" (or 30.0) means "30 days ago"
    try:
        days = _as_int(v)
    except _Unmatchable:
        days = None
    if days is not None:
        if days < 0:
            raise _Unmatchable(value)
        try:
            return now - timedelta(days=days)
        except OverflowError:
            raise _Unmatchable(value)

    try:
        parsed = datetime.fromisoformat(v)
    except ValueError:
        try:
            parsed = datetime.combine(date.fromisoformat(v), datetime.min.time())
        except ValueError:
            raise _Unmatchable(value)

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _coerce_value(rule: SegmentRule, now: datetime):
    field = rule.field
    if field == SegmentField.total_spent:
        return _as_decimal(rule.value)
    if field == SegmentField.visit_count:
        return _as_int(rule.value)
    if field == SegmentField.last_visit:
        return _as_timestamp(rule.value, now)
    if field == SegmentField.email_verified:
        return _as_bool(rule.value)
    return rule.value


def rule_to_criterion(rule: SegmentRule, now: datetime | None = None):
    if now is None:
        now = utcnow()

    column = _COLUMNS[rule.field]
    compare = _OPERATORS[rule.operator]

    try:
        value = _coerce_value(rule, now)
    except _Unmatchable:
        return false()

    return compare(column, value)


def rules_to_criterion(rules: list[SegmentRule], now: datetime | None = None):
    if not rules:
        return None
    if now is None:
        now = utcnow()
    return and_(*[rule_to_criterion(r, now) for r in rules])


def get_customers_by_segment_rules(db: Session, rules: list[SegmentRule], now: datetime | None = None):
    criterion = rules_to_criterion(rules, now)
    if criterion is None:
        return []
    return db.query(Customer).filter(criterion).order_by(Customer.created_at.asc()).all()


def get_audience_size(db: Session, rules: list[SegmentRule], now: datetime | None = None) -> int:
    criterion = rules_to_criterion(rules, now)
    if criterion is None:
        return 0
    return int(db.query(func.count(Customer.id)).filter(criterion).scalar() or 0)
