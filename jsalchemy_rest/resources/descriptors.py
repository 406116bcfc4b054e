"""Immutable descriptions of the models exposed through REST.

A `ModelDescriptor` is computed once per mapped class out of the SQLAlchemy
mapper and the `__rest__` class options::

    class Post(Base):
        __tablename__ = 'post'
        __rest__ = {'enabled': True, 'operations': 'list show create update delete'}

        id: Mapped[int] = mapped_column(primary_key=True)
        title: Mapped[str]
        secret: Mapped[str | None] = mapped_column(info={'rest_selected': False})
        author: Mapped[int | None] = mapped_column(ForeignKey('user.id'))
        tags: Mapped[list] = mapped_column(JSON, default=list, info={'items': {'ref': 'tag'}})

Column `info` flags:
    rest_selected: False hides the field from every projection.
    rest_editable: False drops the field from create/update payloads.
    items: {'ref': <table or model>, 'rest_editable': bool} marks a JSON column
        as an ordered list of references.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from functools import reduce
from typing import Any, Dict, Literal, Optional, Tuple

from pluralizer import Pluralizer
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from sqlalchemy import JSON, Enum
from sqlalchemy.orm import ColumnProperty

from ..utils import column_attrs, dict_merge, memoize, python_type

pluralizer = Pluralizer()
pluralize = pluralizer.plural

OPERATIONS = ('list', 'show', 'create', 'update', 'delete')
Operation = Literal['list', 'show', 'create', 'update', 'delete']

RELATIONSHIP_TYPES = ('reference', 'references')

SEMANTIC_TYPES = {
    str: 'string',
    int: 'number',
    float: 'number',
    bool: 'boolean',
    dict: 'object',
    list: 'object',
}


class _NoDefault:
    def __repr__(self):
        return 'NO_DEFAULT'


NO_DEFAULT = _NoDefault()


class RestOptions(BaseModel):
    """REST options of a model, read from its `__rest__` attribute."""
    model_config = ConfigDict(frozen=True, extra='forbid', arbitrary_types_allowed=True)

    enabled: bool = False
    operations: Tuple[Operation, ...] = ()
    hooks: Dict[Operation, Tuple[Any, ...]] = {}
    relationships: Tuple[str, ...] = ()
    autokey: Optional[str] = None
    collection: Optional[str] = None

    @field_validator('operations', 'relationships', mode='before')
    @classmethod
    def split_words(cls, value):
        if isinstance(value, str):
            return tuple(value.split())
        return value

    @field_validator('autokey', mode='before')
    @classmethod
    def autokey_path(cls, value):
        if isinstance(value, dict):
            return value.get('path')
        return value

    @model_validator(mode='after')
    def operations_required(self):
        if self.enabled and not self.operations:
            raise ValueError('operations are required when rest is enabled')
        return self


@dataclass(frozen=True)
class FieldDescriptor:
    path: str
    type: str
    required: bool = False
    default: Any = NO_DEFAULT
    enum_values: Tuple[str, ...] = ()
    ref: Optional[str] = None
    selected: bool = True
    editable: bool = True
    item_editable: bool = True
    primary_key: bool = False

    @property
    def is_relationship(self) -> bool:
        return self.type in RELATIONSHIP_TYPES

    @property
    def is_list(self) -> bool:
        return self.type == 'references'

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT


@dataclass(frozen=True, eq=False)
class ModelDescriptor:
    name: str
    model: type
    collection: str
    key: str
    find_by: str
    fields: Tuple[FieldDescriptor, ...]
    options: RestOptions
    version_key: Optional[str] = None

    @property
    def endpoint(self) -> str:
        return self.collection.lower()

    @property
    def param(self) -> str:
        """Name of the path parameter holding the lookup key."""
        return self.name.lower()

    @property
    def selected(self) -> Tuple[str, ...]:
        return selected_fields(self)

    @property
    def uneditable(self) -> frozenset:
        return uneditable_fields(self)

    @property
    def relationships(self) -> Tuple[FieldDescriptor, ...]:
        return tuple(f for f in self.fields if f.is_relationship)

    def field(self, path: str) -> FieldDescriptor | None:
        return next((f for f in self.fields if f.path == path), None)

    def column(self, path: str):
        """The mapped column behind the attribute `path`."""
        return self.model.__mapper__.column_attrs[path].columns[0]


def selected_fields(descriptor: ModelDescriptor) -> Tuple[str, ...]:
    """Fields exposed by default, in declaration order."""
    return tuple(f.path for f in descriptor.fields if f.selected is not False)


def uneditable_fields(descriptor: ModelDescriptor) -> frozenset:
    """Fields that can never be written through the API."""
    return frozenset(f.path for f in descriptor.fields
                     if f.editable is False or (f.is_list and f.item_editable is False))


def rest_options(model) -> RestOptions:
    """Merge the `__rest__` dicts found along the MRO, subclasses win."""
    declared = [c.__dict__['__rest__'] for c in reversed(model.mro()) if '__rest__' in c.__dict__]
    return RestOptions(**reduce(lambda acc, options: dict_merge(options, acc), declared, {}))


def _semantic_type(column) -> Tuple[str, Optional[str]]:
    items = column.info.get('items')
    if items and items.get('ref'):
        return 'references', items['ref']
    if column.foreign_keys:
        return 'reference', next(iter(column.foreign_keys)).column.table.name
    if isinstance(column.type, Enum):
        return 'enum', None
    if isinstance(column.type, JSON):
        return 'object', None
    tp = python_type(column)
    if tp is None:
        return 'string', None
    if issubclass(tp, date):
        return 'date', None
    if issubclass(tp, Decimal):
        return 'number', None
    return next((SEMANTIC_TYPES[base] for base in tp.__mro__ if base in SEMANTIC_TYPES), 'string'), None


def _default(column) -> Any:
    default = column.default
    if default is None or not getattr(default, 'is_scalar', False):
        return NO_DEFAULT
    return default.arg


def describe_field(prop: ColumnProperty, version_key: str | None = None) -> FieldDescriptor:
    column = prop.columns[0]
    info = column.info
    field_type, ref = _semantic_type(column)
    return FieldDescriptor(
        path=prop.key,
        type=field_type,
        required=not column.nullable and not column.primary_key and prop.key != version_key,
        default=_default(column),
        enum_values=tuple(column.type.enums) if field_type == 'enum' else (),
        ref=ref,
        selected=info.get('rest_selected', True) is not False,
        editable=info.get('rest_editable', True) is not False,
        item_editable=(info.get('items') or {}).get('rest_editable', True) is not False,
        primary_key=bool(column.primary_key),
    )


@memoize
def describe_model(model) -> ModelDescriptor:
    """Build (once) the descriptor of a mapped class."""
    options = rest_options(model)
    mapper = model.__mapper__
    key = mapper.get_property_by_column(mapper.primary_key[0]).key
    version_key = None
    if mapper.version_id_col is not None:
        version_key = mapper.get_property_by_column(mapper.version_id_col).key
    fields = tuple(describe_field(prop, version_key) for prop in column_attrs(model))
    paths = {f.path for f in fields}

    find_by = options.autokey or key
    if find_by not in paths:
        raise ValueError(f'autokey "{find_by}" is not a column of {model.__name__}')
    for name in options.relationships:
        field = next((f for f in fields if f.path == name), None)
        if field is None or not field.is_relationship:
            raise ValueError(f'"{name}" is not a relationship of {model.__name__}')

    return ModelDescriptor(
        name=model.__name__,
        model=model,
        collection=(options.collection or pluralize(model.__name__.lower())).lower(),
        key=key,
        find_by=find_by,
        fields=fields,
        options=options,
        version_key=version_key,
    )


@memoize
def related_model(model, ref: str):
    """Find the mapped class behind `ref`, a table or a class name."""
    for mapper in model.registry.mappers:
        if ref in (mapper.class_.__name__, getattr(mapper.local_table, 'name', None)):
            return mapper.class_
    raise LookupError(f'Reference "{ref}" of {model.__name__} is not a mapped model')


def references(descriptor: ModelDescriptor) -> Dict[str, ModelDescriptor]:
    """Descriptors of the models targeted by each relationship field."""
    return {f.path: describe_model(related_model(descriptor.model, f.ref))
            for f in descriptor.relationships}
