"""
Search, filter and pagination shared by every list endpoint.

Each entity describes its list behaviour with a ``ListSpec``; ``apply_listing``
turns the request query string into SQLAlchemy criteria and returns either a
plain list or the paginated envelope the web client understands.
"""
import math
from datetime import date

from flask import current_app
from sqlalchemy import or_

from exceptions import ValidationError

SEARCH_PARAMS = ('search', 'searchTerm', 'q')
NO_RESTRICTION = ('', 'all')
TRUE_VALUES = ('yes', 'true', '1', 'ja')
FALSE_VALUES = ('no', 'false', '0', 'nee')


class ListSpec:
    """How an entity is searched, filtered and ordered"""

    def __init__(self, search_fields=(), filters=None, bool_filters=None, default_order=None):
        self.search_fields = tuple(search_fields)
        self.filters = dict(filters or {})
        self.bool_filters = dict(bool_filters or {})
        self.default_order = default_order


def escape_like(term):
    """Escape LIKE wildcards so the term is matched literally"""
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def search_term(args):
    for name in SEARCH_PARAMS:
        value = args.get(name)
        if value and value.strip():
            return value.strip()
    return None


def parse_bool(value):
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValidationError(f"Ongeldige waarde '{value}', verwacht ja/nee")


def apply_search(query, columns, term):
    if not term or not columns:
        return query
    pattern = f"%{escape_like(term)}%"
    return query.filter(or_(*[column.ilike(pattern, escape='\\') for column in columns]))


def coerce(column, value):
    """Convert a query string value to the column's Python type"""
    try:
        python_type = column.expression.type.python_type
    except NotImplementedError:
        return value
    try:
        if python_type is int:
            return int(value)
        if python_type is date:
            return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Ongeldige filterwaarde '{value}'")
    return value


def apply_filters(query, spec, args):
    for param, column in spec.filters.items():
        value = args.get(param)
        if value is None or value.strip().lower() in NO_RESTRICTION:
            continue
        query = query.filter(column == coerce(column, value.strip()))
    for param, column in spec.bool_filters.items():
        value = args.get(param)
        if value is None or value.strip().lower() in NO_RESTRICTION:
            continue
        query = query.filter(column.is_(parse_bool(value)))
    return query


def _positive_int(args, name, default):
    raw = args.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"Ongeldige waarde voor '{name}'")
    if value < 1:
        raise ValidationError(f"'{name}' moet minimaal 1 zijn")
    return value


def paginate(query, args, serialize):
    """Return the ``{items, totalCount, currentPage, totalPages}`` envelope"""
    page = _positive_int(args, 'page', 1)
    limit = _positive_int(args, 'limit', current_app.config.get('DEFAULT_PAGE_SIZE', 10))
    limit = min(limit, current_app.config.get('MAX_PAGE_SIZE', 100))

    total = query.order_by(None).count()
    records = query.offset((page - 1) * limit).limit(limit).all()
    return {
        'items': [serialize(record) for record in records],
        'totalCount': total,
        'currentPage': page,
        'totalPages': math.ceil(total / limit) if total else 0,
    }


def apply_listing(query, spec, args, serialize=None):
    """Filter ``query`` from request ``args``; paginated only when ``page`` is given"""
    serialize = serialize or (lambda record: record.to_dict())
    query = apply_search(query, spec.search_fields, search_term(args))
    query = apply_filters(query, spec, args)
    if spec.default_order is not None:
        order = spec.default_order
        query = query.order_by(*order) if isinstance(order, (list, tuple)) else query.order_by(order)

    if args.get('page') is not None:
        return paginate(query, args, serialize)
    return [serialize(record) for record in query.all()]
