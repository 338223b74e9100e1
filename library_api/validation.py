import re
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func
from sqlalchemy.orm import Session

from .errors import BadRequestError, ValidationError
from .models import Book, Loan


@dataclass
class ValidationContext:
    db: Session
    # id of the row being updated, excluded from uniqueness checks
    instance_id: Optional[int] = None


@dataclass(frozen=True)
class Rule:
    name: str
    message: str
    check: Callable[[Any, Mapping[str, Any], ValidationContext], bool]


@dataclass
class FieldRules:
    rules: Sequence[Rule]
    optional: bool = False


RuleSet = Dict[str, FieldRules]


def is_empty(value: Any) -> bool:
    return value is None or value == ""


def validate(
    rule_set: RuleSet,
    payload: Mapping[str, Any],
    context: ValidationContext,
    partial: bool = False,
) -> List[Dict[str, Any]]:
    # every failing rule is reported as {"property": field, "infos": {rule: message}}
    # optional fields, and every field when partial, are skipped when empty
    errors = []
    for name, field_rules in rule_set.items():
        value = payload.get(name)
        if (field_rules.optional or partial) and is_empty(value):
            continue
        infos = {}
        for rule in field_rules.rules:
            if not rule.check(value, payload, context):
                infos[rule.name] = rule.message
        if infos:
            errors.append({"property": name, "infos": infos})
    return errors


def validate_or_raise(rule_set, payload, context, partial=False) -> None:
    errors = validate(rule_set, payload, context, partial=partial)
    if errors:
        raise ValidationError(errors)


def require_any_field(payload: Mapping[str, Any], fields: Iterable[str]) -> None:
    """Reject an update payload that carries no non-empty value for ``fields``."""
    if not any(not is_empty(payload.get(name)) for name in fields):
        raise BadRequestError("At least one field must be provided")


def parse_datetime(value: Any) -> Optional[datetime]:
    # ISO-8601 string or datetime -> aware UTC datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def to_naive_utc(value: Any) -> Optional[datetime]:
    parsed = parse_datetime(value)
    return parsed.replace(tzinfo=None) if parsed else None


def _int_list(value: Any) -> Optional[List[int]]:
    if not isinstance(value, list):
        return None
    if not all(isinstance(item, int) and not isinstance(item, bool) for item in value):
        return None
    return value


# pure rules

def required(message: str) -> Rule:
    return Rule("isNotEmpty", message, lambda value, payload, ctx: not is_empty(value))


def is_string(message: str) -> Rule:
    return Rule("isString", message, lambda value, payload, ctx: isinstance(value, str))


def is_email(message: str) -> Rule:
    def check(value, payload, ctx):
        if not isinstance(value, str):
            return False
        try:
            validate_email(value, check_deliverability=False)
        except EmailNotValidError:
            return False
        return True
    return Rule("isEmail", message, check)


def length(minimum: int, maximum: Optional[int], message: str) -> Rule:
    def check(value, payload, ctx):
        if not isinstance(value, str):
            return False
        return len(value) >= minimum and (maximum is None or len(value) <= maximum)
    return Rule("length", message, check)


def matches(name: str, pattern: str, message: str) -> Rule:
    compiled = re.compile(pattern)
    return Rule(name, message, lambda value, payload, ctx: isinstance(value, str) and bool(compiled.search(value)))


def is_int(message: str) -> Rule:
    return Rule(
        "isInt", message, lambda value, payload, ctx: isinstance(value, int) and not isinstance(value, bool)
    )


def minimum(bound: int, message: str) -> Rule:
    def check(value, payload, ctx):
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= bound
    return Rule("min", message, check)


def is_array(message: str) -> Rule:
    return Rule("isArray", message, lambda value, payload, ctx: isinstance(value, list))


def is_int_array(message: str) -> Rule:
    return Rule("isIntArray", message, lambda value, payload, ctx: _int_list(value) is not None)


def array_min_size(size: int, message: str) -> Rule:
    return Rule("arrayMinSize", message, lambda value, payload, ctx: isinstance(value, list) and len(value) >= size)


def array_max_size(size: Union[int, Callable[[], int]], message: str) -> Rule:
    def check(value, payload, ctx):
        limit = size() if callable(size) else size
        return isinstance(value, list) and len(value) <= limit
    return Rule("arrayMaxSize", message, check)


def array_unique(message: str) -> Rule:
    def check(value, payload, ctx):
        if not isinstance(value, list):
            return False
        try:
            return len(set(value)) == len(value)
        except TypeError:
            return False
    return Rule("arrayUnique", message, check)


def not_in(forbidden: Iterable[Any], message: str) -> Rule:
    forbidden = list(forbidden)

    def check(value, payload, ctx):
        items = value if isinstance(value, list) else [value]
        return not any(item in forbidden for item in items)
    return Rule("isNotIn", message, check)


def is_date(message: str) -> Rule:
    return Rule("isDate", message, lambda value, payload, ctx: parse_datetime(value) is not None)


def not_in_past(message: str, clock: Callable[[], datetime] = lambda: datetime.now(UTC)) -> Rule:
    def check(value, payload, ctx):
        parsed = parse_datetime(value)
        return parsed is not None and parsed >= clock()
    return Rule("minDate", message, check)


def valid_return_date(start_field: str, message: str) -> Rule:
    """The value must be strictly after the date held in ``start_field``."""
    def check(value, payload, ctx):
        end = parse_datetime(value)
        start = parse_datetime(payload.get(start_field))
        if end is None or start is None:
            return False
        return end > start
    return Rule("isValidReturnDate", message, check)


# persistence-backed rules
# A value of the wrong type passes these checks; the type rules report it.

def unique(model, column: str, message: str) -> Rule:
    def check(value, payload, ctx):
        if is_empty(value) or isinstance(value, (list, dict)):
            return True
        query = ctx.db.query(model.id).filter(getattr(model, column) == value)
        if ctx.instance_id is not None:
            query = query.filter(model.id != ctx.instance_id)
        return query.first() is None
    return Rule("isUnique", message, check)


def available(model, column: str, message: str) -> Rule:
    # a scalar or a list, every value must match a row
    def check(value, payload, ctx):
        values = value if isinstance(value, list) else [value]
        try:
            distinct = set(values)
        except TypeError:
            return True
        if not distinct:
            return True
        found = ctx.db.query(getattr(model, column)).filter(getattr(model, column).in_(distinct)).count()
        return found == len(distinct)
    return Rule("isAvailable", message, check)


def book_ids_exist(message: str) -> Rule:
    # only validated books count
    def check(value, payload, ctx):
        ids = _int_list(value)
        if not ids:
            return True
        distinct = set(ids)
        found = ctx.db.query(Book.id).filter(Book.id.in_(distinct), Book.is_valid.is_(True)).count()
        return found == len(distinct)
    return Rule("isBookIdExists", message, check)


def book_loanable(message: str) -> Rule:
    """Every submitted book has fewer outstanding loans than copies."""
    def check(value, payload, ctx):
        ids = _int_list(value)
        if not ids:
            return True
        for book_id in set(ids):
            book = ctx.db.get(Book, book_id)
            if book is None or not book.is_valid:
                return False
            outstanding = (
                ctx.db.query(func.count(Loan.id))
                .filter(Loan.book_id == book_id, Loan.return_at.is_(None))
                .scalar()
            )
            if outstanding + ids.count(book_id) > book.quantity:
                return False
        return True
    return Rule("isBookAvailableToLoan", message, check)
