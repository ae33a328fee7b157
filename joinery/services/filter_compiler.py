"""
Filter compiler — declarative filter descriptors → SQLAlchemy predicates.

Input is an ordered list of descriptors:

    {"type": "eq", "column": "department", "value": "office"}
    {"type": "in", "column": "status", "value": ["active", "pending"]}
    {"type": "or", "value": "status.eq.active,and(priority.gte.3,owner.is.null)"}
    {"type": "not", "column": "status", "operator": "eq", "value": "archived"}
    {"type": "filter", "column": "name", "operator": "ilike", "value": "*oak*"}

Output is a list of clauses the caller ANDs together (left to right) on top
of its own tenant predicate. The compiler is pure: no session, no I/O.

Supported types: eq, neq, gt, gte, lt, lte, like, ilike, is, in, contains,
or, not, filter. Any other type is rejected with ValidationError.

Operator strings inside ``or`` / ``not`` / ``filter`` use the PostgREST
vocabulary (eq, neq, gt, gte, lt, lte, like, ilike, is, in, cs), and ``*``
is accepted as the LIKE wildcard.
"""

import sqlalchemy as sa

from joinery.core.exceptions import ValidationError
from joinery.utils.errors import E
from joinery.utils.helpers import coerce_value

FILTER_TYPES = (
    "eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike",
    "is", "in", "contains", "or", "not", "filter",
)

_MAX_DEPTH = 8


def _column(model, name):
    if not name:
        raise ValidationError("Filter column is required", code=E.VALIDATION_REQUIRED)
    col = model.__table__.columns.get(name)
    if col is None:
        raise ValidationError(
            f"Unknown filter column '{name}' for {model.__tablename__}",
            details={"column": name},
        )
    return col


def _pattern(value):
    return str(value).replace("*", "%")


def _is_clause(col, value):
    if isinstance(value, str):
        value = {"null": None, "true": True, "false": False}.get(value.strip().lower(), value)
    if value is None:
        return col.is_(None)
    if value is True:
        return col.is_(True)
    if value is False:
        return col.is_(False)
    raise ValidationError(
        f"'is' accepts null, true or false, got {value!r}", details={"column": col.name},
    )


def _as_list(value):
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("(") and text.endswith(")"):
            text = text[1:-1]
        return [_unquote(v) for v in _split_top_level(text) if v != ""]
    raise ValidationError("'in' expects a list of values")


def _contains_clause(col, value):
    if isinstance(value, str):
        return col.contains(value, autoescape=True)
    if isinstance(value, (list, tuple)):
        as_text = sa.cast(col, sa.String)
        return sa.and_(*[as_text.contains(str(v), autoescape=True) for v in value])
    raise ValidationError(
        "'contains' expects a string or a list", details={"column": col.name},
    )


def _operator_clause(col, op, value):
    """Build ``col <op> value`` for a PostgREST-style operator name."""
    if op in ("eq", "neq", "gt", "gte", "lt", "lte"):
        v = coerce_value(col, value)
        return {
            "eq": lambda: col == v,
            "neq": lambda: col != v,
            "gt": lambda: col > v,
            "gte": lambda: col >= v,
            "lt": lambda: col < v,
            "lte": lambda: col <= v,
        }[op]()
    if op == "like":
        return col.like(_pattern(value))
    if op == "ilike":
        return col.ilike(_pattern(value))
    if op == "is":
        return _is_clause(col, value)
    if op == "in":
        return col.in_([coerce_value(col, v) for v in _as_list(value)])
    if op in ("cs", "contains"):
        if isinstance(value, str) and value.startswith("{") and value.endswith("}"):
            value = [_unquote(v) for v in _split_top_level(value[1:-1])]
        return _contains_clause(col, value)
    raise ValidationError(f"Unsupported filter operator '{op}'", details={"operator": op})


# ── PostgREST logic-tree strings (used by "or") ─────────────────────────

def _split_top_level(text):
    """Split on commas that are outside parentheses and double quotes."""
    parts, buf, depth, quoted = [], [], 0, False
    for ch in text:
        if ch == '"':
            quoted = not quoted
        elif not quoted and ch == "(":
            depth += 1
        elif not quoted and ch == ")":
            depth -= 1
            if depth < 0:
                raise ValidationError("Unbalanced parentheses in filter expression")
        if ch == "," and depth == 0 and not quoted:
            parts.append("".join(buf).strip())
            buf = []
        else:
            buf.append(ch)
    if depth != 0 or quoted:
        raise ValidationError("Unbalanced parentheses or quotes in filter expression")
    parts.append("".join(buf).strip())
    return parts


def _unquote(value):
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def _parse_logic(model, text, depth):
    if depth > _MAX_DEPTH:
        raise ValidationError("Filter expression nested too deeply")
    items = [p for p in _split_top_level(text) if p]
    if not items:
        raise ValidationError("Empty filter expression")
    return [_parse_condition(model, item, depth) for item in items]


def _parse_condition(model, item, depth):
    negate = False
    if item.startswith("not."):
        negate, item = True, item[4:]
    for group, join in (("and(", sa.and_), ("or(", sa.or_)):
        if item.startswith(group) and item.endswith(")"):
            clause = join(*_parse_logic(model, item[len(group):-1], depth + 1))
            return sa.not_(clause) if negate else clause

    col_name, sep, rest = item.partition(".")
    op, sep2, value = rest.partition(".")
    if not sep or not sep2:
        raise ValidationError(f"Malformed filter condition '{item}'")
    if op == "not":
        negate = not negate
        op, sep3, value = value.partition(".")
        if not sep3:
            raise ValidationError(f"Malformed filter condition '{item}'")
    col = _column(model, col_name)
    value = value if op == "in" else _unquote(value)
    clause = _operator_clause(col, op, value)
    return sa.not_(clause) if negate else clause


# ── public API ───────────────────────────────────────────────────────────

def compile_filter(model, descriptor):
    """Compile one descriptor into a single SQLAlchemy clause."""
    if not isinstance(descriptor, dict):
        raise ValidationError("Each filter must be an object")
    ftype = descriptor.get("type")
    value = descriptor.get("value")

    if ftype == "or":
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("'or' expects a non-empty expression string")
        return sa.or_(*_parse_logic(model, value, 0))

    if ftype in ("not", "filter"):
        operator = descriptor.get("operator")
        if not operator:
            raise ValidationError(
                f"'{ftype}' requires an operator", code=E.VALIDATION_REQUIRED,
            )
        col = _column(model, descriptor.get("column"))
        clause = _operator_clause(col, operator, value)
        return sa.not_(clause) if ftype == "not" else clause

    if ftype == "contains":
        return _contains_clause(_column(model, descriptor.get("column")), value)

    if ftype in FILTER_TYPES:
        return _operator_clause(_column(model, descriptor.get("column")), ftype, value)

    raise ValidationError(
        f"Unsupported filter type '{ftype}'",
        details={"type": ftype, "supported": list(FILTER_TYPES)},
    )


def compile_filters(model, filters):
    """Compile an ordered descriptor list. Returns a list of clauses to AND."""
    if filters is None:
        return []
    if not isinstance(filters, (list, tuple)):
        raise ValidationError("filters must be a list")
    return [compile_filter(model, f) for f in filters]
