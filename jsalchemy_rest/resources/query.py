"""Translate request query parameters into SQLAlchemy statements.

Supported parameters::

    ?title=foo              equality filter on any column
    &select=title,author    projection, restricted to the selected fields
    &populate=author,tags   replace reference ids by the referenced records
    &sort=-created,title    ordering, `-` for descending
    &limit=10&skip=20       pagination
    &_=1700000000           cache buster, ignored
"""
from typing import Iterable, List, Mapping, Sequence

from sqlalchemy import Select, false, func, select

from ..context import db
from ..exceptions import InvalidQuery, MalformedValue
from ..utils import cast_value, split_list, unique
from .descriptors import ModelDescriptor, references

RESERVED_PARAMS = frozenset({'populate', '_', 'limit', 'skip', 'sort', 'select'})


def criteria(descriptor: ModelDescriptor, params: Mapping[str, str]) -> list:
    """Equality filters for every non reserved parameter."""
    paths = {f.path for f in descriptor.fields}
    clauses = []
    for name, value in params.items():
        if name in RESERVED_PARAMS:
            continue
        if name not in paths:
            # unknown paths can't match any record
            clauses.append(false())
            continue
        try:
            value = cast_value(descriptor.column(name), value)
        except (ValueError, TypeError) as exc:
            raise MalformedValue(f'Invalid value "{value}" for {name}') from exc
        clauses.append(getattr(descriptor.model, name) == value)
    return clauses


def projection(descriptor: ModelDescriptor, requested: str | None = None) -> List[str]:
    """Fields to load: the requested ones that are selectable, or all of them."""
    allowed = descriptor.selected
    wanted = set(split_list(requested))
    fields = [f for f in allowed if f in wanted] or list(allowed)
    if descriptor.key not in fields:
        fields.insert(0, descriptor.key)
    return fields


def sorting(descriptor: ModelDescriptor, sort: str | None) -> list:
    clauses = []
    for token in split_list(sort, ', '):
        name = token.lstrip('+-')
        if descriptor.field(name) is None:
            raise InvalidQuery(f'Cannot sort {descriptor.collection} by "{name}"')
        attr = getattr(descriptor.model, name)
        clauses.append(attr.desc() if token.startswith('-') else attr.asc())
    return clauses


def _bound(params: Mapping[str, str], name: str) -> int | None:
    value = params.get(name)
    if value in (None, ''):
        return None
    try:
        value = int(value)
    except ValueError as exc:
        raise InvalidQuery(f'"{name}" must be an integer') from exc
    if value < 0:
        raise InvalidQuery(f'"{name}" must not be negative')
    return value


def build_select(descriptor: ModelDescriptor, params: Mapping[str, str], fields: Iterable[str],
                 where: Iterable = (), bounded: bool = True) -> Select:
    model = descriptor.model
    query = select(*(getattr(model, f) for f in fields))
    query = query.where(*criteria(descriptor, params), *where)
    order_by = sorting(descriptor, params.get('sort'))
    if order_by:
        query = query.order_by(*order_by)
    if not bounded:
        return query
    return query.limit(_bound(params, 'limit')).offset(_bound(params, 'skip'))


async def count(descriptor: ModelDescriptor) -> int:
    """Unfiltered number of records."""
    return (await db.execute(select(func.count()).select_from(descriptor.model))).scalar()


async def fetch_all(descriptor: ModelDescriptor, params: Mapping[str, str], fields: Iterable[str],
                    where: Iterable = (), bounded: bool = True) -> List[dict]:
    result = await db.execute(build_select(descriptor, params, fields, where, bounded))
    return [dict(row) for row in result.mappings()]


async def fetch_one(descriptor: ModelDescriptor, fields: Iterable[str], where: Iterable) -> dict | None:
    result = await db.execute(select(*(getattr(descriptor.model, f) for f in fields)).where(*where))
    row = result.mappings().first()
    return dict(row) if row is not None else None


async def fetch_many(descriptor: ModelDescriptor, fields: Iterable[str], ids: Sequence) -> List[dict]:
    key = getattr(descriptor.model, descriptor.key)
    result = await db.execute(select(*(getattr(descriptor.model, f) for f in fields)).where(key.in_(ids)))
    return [dict(row) for row in result.mappings()]


def in_stored_order(descriptor: ModelDescriptor, rows: Iterable[dict], ids: Sequence) -> List[dict]:
    """One copy of the matching row for each id, following `ids` (duplicates included)."""
    by_id = {row[descriptor.key]: row for row in rows}
    return [dict(by_id[id_]) for id_ in ids if id_ in by_id]


def paginate(items: List[dict], params: Mapping[str, str]) -> List[dict]:
    """Apply `skip` and `limit` to an already loaded list."""
    skip, limit = _bound(params, 'skip'), _bound(params, 'limit')
    items = items[skip or 0:]
    return items if limit is None else items[:limit]


def reference_ids(target: ModelDescriptor, value) -> list:
    """The ids stored in a relationship value, cast to the target key type."""
    if value is None:
        return []
    column = target.column(target.key)
    ids = []
    for id_ in value if isinstance(value, (list, tuple)) else [value]:
        try:
            ids.append(cast_value(column, id_))
        except (ValueError, TypeError):
            continue
    return ids


async def populate(descriptor: ModelDescriptor, items: List[dict], names: Iterable[str]) -> None:
    """Swap the ids of the `names` relationships with the referenced records.

    Each target is projected on its own selected fields; populated records are
    not populated any further."""
    if not items:
        return
    targets = references(descriptor)
    for name in unique(names):
        target = targets.get(name)
        if target is None or name not in items[0]:
            continue
        ids = unique(id_ for item in items for id_ in reference_ids(target, item[name]))
        found = {}
        if ids:
            fields = projection(target)
            rows = await fetch_many(target, fields, ids)
            found = {row[target.key]: row for row in rows}
        for item in items:
            value = item[name]
            if isinstance(value, (list, tuple)):
                item[name] = [found[id_] for id_ in reference_ids(target, value) if id_ in found]
            elif value is not None:
                item[name] = next((found[id_] for id_ in reference_ids(target, value) if id_ in found), None)

