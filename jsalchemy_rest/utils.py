import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from functools import wraps
from typing import Any, Callable, Iterable, Tuple

from sqlalchemy import JSON, Column, Enum
from sqlalchemy.orm import ColumnProperty, DeclarativeBase

VALUE_SERIALIZERS = {
    Decimal: float,
    timedelta: lambda x: x.total_seconds(),
    bytes: lambda x: None,
}

TRUE_STRINGS = {'true', '1', 'yes', 'on'}
FALSE_STRINGS = {'false', '0', 'no', 'off'}


def memoize(func):
    cache = {}

    @wraps(func)
    def wrapper(*args):
        if args not in cache:
            cache[args] = func(*args)
        return cache[args]

    wrapper.cache = cache
    return wrapper


def all_model(base) -> Tuple[DeclarativeBase]:
    """Return every class mapped by a declarative base or a registry."""
    registry = getattr(base, 'registry', base)
    return tuple(mapper.class_ for mapper in registry.mappers)


def column_attrs(model) -> Tuple[ColumnProperty]:
    """Column attributes of `model` in declaration order."""
    return tuple(model.__mapper__.column_attrs)


def split_list(value: str | None, separators: str = ',') -> list[str]:
    """Split a query string list, dropping empty items."""
    if not value:
        return []
    return [item for item in re.split(f'[{re.escape(separators)}]', value) if item.strip()]


def python_type(column: Column) -> type | None:
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def cast_value(column: Column, value: Any) -> Any:
    """Cast `value` to the python type of `column`.

    Raises ValueError (or TypeError) when the value doesn't fit the column."""
    if value is None:
        return None
    if isinstance(column.type, Enum) and column.type.enum_class is None and value not in column.type.enums:
        raise ValueError(f'{value!r} is not one of {", ".join(column.type.enums)}')
    if isinstance(column.type, JSON):
        if isinstance(value, (dict, list)):
            return value
        raise ValueError(f'{value!r} is not a JSON object or array')
    target = python_type(column)
    if target is None or isinstance(value, target) and not (target is int and isinstance(value, bool)):
        return value
    if target is bool:
        if isinstance(value, str):
            lowered = value.lower()
            if lowered in TRUE_STRINGS:
                return True
            if lowered in FALSE_STRINGS:
                return False
        raise ValueError(f'{value!r} is not a boolean')
    if target is datetime:
        return datetime.fromisoformat(value)
    if target is date:
        return date.fromisoformat(value)
    if target is int and isinstance(value, (bool, float)):
        raise ValueError(f'{value!r} is not an integer')
    return target(value)


def json_default(value: Any) -> Any:
    """orjson fallback for the types it can't serialize on its own."""
    for tp, convert in VALUE_SERIALIZERS.items():
        if isinstance(value, tp):
            return convert(value)
    raise TypeError(f'type {type(value)} not serializable.')


def _dict_merge(a: dict, b: dict, reduce_func: Callable = None):
    sa, sb = map(set, (a, b))
    a_only, b_only = sa - sb, sb - sa
    both = sa.intersection(sb)
    for key in a_only:
        yield key, a[key]
    for key in b_only:
        yield key, b[key]
    for key in both:
        value = a[key]
        if isinstance(value, dict) and isinstance(b[key], dict):
            yield key, dict(_dict_merge(value, b[key], reduce_func))
        elif reduce_func:
            yield key, reduce_func(value, b[key])
        else:
            yield key, value


def dict_merge(a: dict, b: dict, reduce_func: Callable = None) -> dict:
    """Deep merge `b` into `a`; on conflicts the values of `a` win."""
    return dict(_dict_merge(a, b, reduce_func))


def unique(items: Iterable) -> list:
    seen = set()
    return [x for x in items if not (x in seen or seen.add(x))]
