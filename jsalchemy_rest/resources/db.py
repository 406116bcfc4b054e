import logging
from typing import Any, Iterable, Tuple

from click import style
from orjson import JSONDecodeError, loads
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from starlette.requests import Request
from starlette.responses import Response

from ..context import db
from ..exceptions import MalformedIdentifier, ValidationError, VersionConflict
from ..responses import OrjsonResponse, not_found
from ..utils import cast_value, split_list
from .base import RouteDescriptor, WebResource
from .descriptors import OPERATIONS, ModelDescriptor, references
from .query import (count, fetch_all, fetch_one, in_stored_order, paginate, populate, projection,
                    reference_ids)

log = logging.getLogger('JSAlchemy.rest')

MISSING = object()


class DBResource(WebResource):
    """Web Resource based on sqlalchemy model.

    Builds the route descriptors of one model: every handler opens its own
    database context and closes over the (immutable) model descriptor."""

    def __init__(self, resource_manager: 'RestRegistry', descriptor: ModelDescriptor):
        super(DBResource, self).__init__()
        self.resource_manager = resource_manager
        self.descriptor = descriptor
        self.model = descriptor.model
        self.name = descriptor.collection
        # resolve the references (and theirs, used by populate in sub-lists) up front
        self.targets = references(descriptor)
        for target in self.targets.values():
            references(target)
        self.collection_path = f'{resource_manager.api_root}{descriptor.endpoint}'
        self.item_path = f'{self.collection_path}/{{{descriptor.param}}}'
        log.debug('Created resource "%s"', self.name)

    @property
    def context(self):
        return self.resource_manager.context

    def log_request(self, verb: str, request: Request) -> None:
        log.info('received request to %s on %s (%s).', style(verb, fg='red'),
                 style(self.name, fg='blue'), request.url.path)

    def cast_key(self, key: str) -> Any:
        try:
            return cast_value(self.descriptor.column(self.descriptor.find_by), key)
        except (ValueError, TypeError) as exc:
            raise MalformedIdentifier(self.name, key) from exc

    async def by_key(self, key: str):
        """Get the record object by its lookup key (autokey or primary key)."""
        column = getattr(self.model, self.descriptor.find_by)
        return (await db.execute(select(self.model).where(column == self.cast_key(key)))).scalar()

    @staticmethod
    async def read_body(request: Request) -> dict:
        raw = await request.body()
        if not raw:
            return {}
        try:
            body = loads(raw)
        except JSONDecodeError as exc:
            raise ValidationError('Malformed JSON body') from exc
        if not isinstance(body, dict):
            raise ValidationError('The body must be a JSON object')
        return body

    def flatten_relationships(self, record: dict) -> dict:
        """Replace related objects found in `record` by their ids."""
        for field in self.descriptor.relationships:
            if field.path not in record:
                continue
            target = self.targets[field.path]
            value = record[field.path]
            if field.is_list and isinstance(value, (list, tuple)):
                record[field.path] = [self._reference_id(target, v) for v in value]
            else:
                record[field.path] = self._reference_id(target, value)
        return record

    @staticmethod
    def _reference_id(target: ModelDescriptor, value: Any) -> Any:
        if isinstance(value, dict):
            return value.get(target.key, value.get('id'))
        return value

    def deserialize_record(self, record: dict, creating: bool = False) -> dict:
        """Clean and transform the `record` according with its type and writable fields."""
        descriptor = self.descriptor
        blocked = descriptor.uneditable | {descriptor.version_key}
        if not creating:
            blocked |= {descriptor.key}
        ret, errors = {}, {}
        for name, value in record.items():
            if descriptor.field(name) is None:
                log.warning('field "%s" not found on %s, skipping', style(name, fg='red'), self.name)
                continue
            if name in blocked:
                log.debug('field "%s" of %s is not editable, skipping', name, self.name)
                continue
            try:
                ret[name] = cast_value(descriptor.column(name), value)
            except (ValueError, TypeError):
                errors[name] = f'Invalid value for {name}'
        errors.update(self.validate(ret))
        if errors:
            raise ValidationError(f'Invalid {self.name} payload', errors)
        return ret

    def validate(self, record: dict) -> dict:
        """Run the `validate_<field>` static methods declared on the model."""
        ret = {}
        for attr, value in tuple(record.items()):
            validator = getattr(self.model, f'validate_{attr}', None)
            if validator:
                try:
                    record[attr] = validator(value)
                except ValidationError as e:
                    ret[attr] = e.message
        return ret

    def check_required(self, record: dict) -> None:
        missing = {}
        for field in self.descriptor.fields:
            column = self.descriptor.column(field.path)
            if (field.required and record.get(field.path) is None
                    and column.default is None and column.server_default is None):
                missing[field.path] = f'{field.path} is required'
        if missing:
            raise ValidationError(f'Invalid {self.name} payload', missing)

    def check_version(self, token: Any, stored: Any, key: str) -> None:
        """Reject tokens that aren't integers or are older than the stored one."""
        if stored is None:
            return
        if isinstance(token, bool) or not isinstance(token, int) or token < stored:
            raise VersionConflict(f'{self.name} {key} has been modified, current version is {stored}')

    async def flush(self) -> None:
        try:
            await db.flush()
        except StaleDataError as exc:
            raise VersionConflict(f'{self.name} has been modified by another request') from exc
        except IntegrityError as exc:
            raise ValidationError(str(exc.orig)) from exc

    def serialize(self, record, fields: Iterable[str]) -> dict:
        return {field: getattr(record, field) for field in fields}

    def list(self, middleware: Tuple = ()) -> RouteDescriptor:
        descriptor = self.descriptor

        async def handler(request: Request) -> Response:
            self.log_request('list', request)
            params = request.query_params
            fields = projection(descriptor, params.get('select'))
            async with self.context():
                total = await count(descriptor)
                items = await fetch_all(descriptor, params, fields)
                await populate(descriptor, items, split_list(params.get('populate')))
            return OrjsonResponse(items, headers={'total': str(total)})

        return RouteDescriptor('GET', self.collection_path, handler, tuple(middleware), 'list', self.name)

    def relationship(self, name: str, middleware: Tuple = ()) -> RouteDescriptor:
        descriptor = self.descriptor
        target = self.targets[name]
        target_key = getattr(target.model, target.key)

        async def handler(request: Request) -> Response:
            self.log_request(f'list {name}', request)
            key = request.path_params[descriptor.param]
            params = request.query_params
            fields = projection(target, params.get('select'))
            async with self.context():
                parent = await self.by_key(key)
                if parent is None:
                    return not_found(self.name, key)
                ids = reference_ids(target, getattr(parent, name))
                items = []
                if ids and params.get('sort'):
                    items = await fetch_all(target, params, fields, where=[target_key.in_(ids)])
                elif ids:
                    rows = await fetch_all(target, params, fields, where=[target_key.in_(ids)], bounded=False)
                    items = paginate(in_stored_order(target, rows, ids), params)
                await populate(target, items, split_list(params.get('populate')))
            return OrjsonResponse(items, headers={'total': str(len(ids))})

        return RouteDescriptor('GET', f'{self.item_path}/{name}', handler, tuple(middleware),
                               f'list_{name}', self.name)

    def show(self, middleware: Tuple = ()) -> RouteDescriptor:
        descriptor = self.descriptor

        async def handler(request: Request) -> Response:
            self.log_request('show', request)
            key = request.path_params[descriptor.param]
            params = request.query_params
            fields = projection(descriptor, params.get('select'))
            where = [getattr(self.model, descriptor.find_by) == self.cast_key(key)]
            async with self.context():
                item = await fetch_one(descriptor, fields, where)
                if item is None:
                    return not_found(self.name, key)
                await populate(descriptor, [item], split_list(params.get('populate')))
            return OrjsonResponse(item)

        return RouteDescriptor('GET', self.item_path, handler, tuple(middleware), 'show', self.name)

    def create(self, middleware: Tuple = ()) -> RouteDescriptor:
        descriptor = self.descriptor

        async def handler(request: Request) -> Response:
            self.log_request('create', request)
            body = self.flatten_relationships(await self.read_body(request))
            record = self.deserialize_record(body, creating=True)
            self.check_required(record)
            async with self.context():
                item = self.model(**record)
                db.add(item)
                await self.flush()
                await db.refresh(item)
                payload = self.serialize(item, projection(descriptor))
            return OrjsonResponse(payload)

        return RouteDescriptor('POST', self.collection_path, handler, tuple(middleware), 'create', self.name)

    def update(self, middleware: Tuple = ()) -> Tuple[RouteDescriptor, ...]:
        descriptor = self.descriptor

        async def handler(request: Request) -> Response:
            self.log_request('update', request)
            key = request.path_params[descriptor.param]
            params = request.query_params
            async with self.context():
                item = await self.by_key(key)
                if item is None:
                    return not_found(self.name, key)
                body = self.flatten_relationships(await self.read_body(request))
                token = body.get(descriptor.version_key, MISSING) if descriptor.version_key else MISSING
                record = self.deserialize_record(body)
                if token is not MISSING:
                    self.check_version(token, getattr(item, descriptor.version_key), key)
                for attr, value in record.items():
                    setattr(item, attr, value)
                await self.flush()
                pk = getattr(item, descriptor.key)
                fields = projection(descriptor, params.get('select'))
                payload = await fetch_one(descriptor, fields, [getattr(self.model, descriptor.key) == pk])
                await populate(descriptor, [payload], split_list(params.get('populate')))
            return OrjsonResponse(payload)

        middleware = tuple(middleware)
        return (RouteDescriptor('PUT', self.item_path, handler, middleware, 'update', self.name),
                RouteDescriptor('PATCH', self.item_path, handler, middleware, 'update', self.name))

    def delete(self, middleware: Tuple = ()) -> RouteDescriptor:
        descriptor = self.descriptor

        async def handler(request: Request) -> Response:
            self.log_request('delete', request)
            key = request.path_params[descriptor.param]
            async with self.context():
                # load first so that the mapper delete events are fired
                item = await self.by_key(key)
                if item is None:
                    return not_found(self.name, key)
                await db.delete(item)
                await self.flush()
            return OrjsonResponse({'message': f'Successfully deleted {self.name}'})

        return RouteDescriptor('DELETE', self.item_path, handler, tuple(middleware), 'delete', self.name)

    def routes(self) -> Tuple[RouteDescriptor, ...]:
        """Route descriptors of every enabled operation, in canonical order."""
        options = self.descriptor.options
        hooks = options.hooks
        ret = []
        for operation in OPERATIONS:
            if operation not in options.operations:
                continue
            built = getattr(self, operation)(hooks.get(operation, ()))
            ret.extend(built if isinstance(built, tuple) else (built,))
            if operation == 'list':
                ret.extend(self.relationship(name, hooks.get('list', ())) for name in options.relationships)
        return tuple(ret)

    def __repr__(self):
        return f'<DB{self.name.capitalize()}Resource>'
