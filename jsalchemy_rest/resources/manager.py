import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Tuple

from click import style
from fastapi import Depends
from fastapi.params import Depends as DependsParam
from sqlalchemy.ext.asyncio import AsyncSession

from ..context import ContextManager
from ..docs import render
from ..exceptions import RegistrationError
from ..responses import OrjsonResponse
from ..utils import all_model
from .base import RouteDescriptor
from .db import DBResource
from .descriptors import OPERATIONS, describe_model, rest_options

log = logging.getLogger('JSAlchemy.rest')

NEW_LINE = '\n'


class RegistrationStatus(str, Enum):
    REGISTERED = 'registered'
    SKIPPED = 'skipped'
    DISABLED = 'disabled'
    FAILED = 'failed'


@dataclass(frozen=True)
class RegistrationResult:
    model: str
    status: RegistrationStatus
    collection: str | None = None
    routes: Tuple[RouteDescriptor, ...] = ()
    error: RegistrationError | None = None


@dataclass
class RegistrationReport:
    results: List[RegistrationResult] = field(default_factory=list)

    def _having(self, *statuses: RegistrationStatus) -> Tuple[RegistrationResult, ...]:
        return tuple(r for r in self.results if r.status in statuses)

    @property
    def registered(self) -> Tuple[RegistrationResult, ...]:
        return self._having(RegistrationStatus.REGISTERED)

    @property
    def skipped(self) -> Tuple[RegistrationResult, ...]:
        return self._having(RegistrationStatus.SKIPPED, RegistrationStatus.DISABLED)

    @property
    def failed(self) -> Tuple[RegistrationResult, ...]:
        return self._having(RegistrationStatus.FAILED)

    def __iter__(self):
        return iter(self.results)

    def __len__(self):
        return len(self.results)


def _dependency(middleware):
    """Hooks are FastAPI dependencies: bare callables get wrapped in `Depends`."""
    if isinstance(middleware, DependsParam):
        return middleware
    return Depends(middleware)


class RestRegistry:
    """Owns the generated routes and documentation of every registered model."""

    def __init__(self, session_maker: Callable[[], AsyncSession], api_root: str = '/api/'):
        self.context = ContextManager(session_maker)
        self.api_root = api_root or '/api/'
        self._resources: Dict[str, DBResource] = {}
        self._routes: List[RouteDescriptor] = []
        self._docs: Dict[str, Dict[str, str]] = {}
        self._mounted: Dict[int, int] = {}

    def __call__(self):
        return self.context()

    @property
    def routes(self) -> Tuple[RouteDescriptor, ...]:
        return tuple(self._routes)

    @property
    def resources(self) -> Dict[str, DBResource]:
        return dict(self._resources)

    def __getitem__(self, item: str) -> DBResource:
        return self._resources[item]

    def __contains__(self, item):
        return item in self._resources

    def register(self, model) -> RegistrationResult:
        """Build and record the routes and the documentation of `model`.

        Nothing is recorded unless the whole model could be built."""
        name = getattr(model, '__name__', repr(model))
        try:
            if not rest_options(model).enabled:
                log.info('model %s is not exposed, skipping', style(name, fg='yellow'))
                return RegistrationResult(name, RegistrationStatus.DISABLED)
            descriptor = describe_model(model)
            if descriptor.collection in self._resources:
                log.info('resource "%s" already registered, skipping', style(descriptor.collection, fg='blue'))
                return RegistrationResult(name, RegistrationStatus.SKIPPED, descriptor.collection)

            resource = DBResource(self, descriptor)
            routes = resource.routes()
            taken = {r.signature for r in self._routes}
            for route in routes:
                if route.signature in taken:
                    raise ValueError(f'route {route.method} {route.path} is already registered')
                taken.add(route.signature)
            docs = {'model': render('model', descriptor, self.api_root)}
            docs.update((operation, render(operation, descriptor, self.api_root))
                        for operation in OPERATIONS if operation in descriptor.options.operations)
        except Exception as exc:
            error = RegistrationError(name, exc)
            log.exception(error.message)
            return RegistrationResult(name, RegistrationStatus.FAILED, error=error)

        self._resources[descriptor.collection] = resource
        self._routes.extend(routes)
        self._docs[descriptor.collection] = docs
        for route in routes:
            log.debug('route %s %s registered', style(route.method, fg='red'), route.path)
        return RegistrationResult(name, RegistrationStatus.REGISTERED, descriptor.collection, routes)

    register_list = register

    def discover_and_register_all(self, source) -> RegistrationReport:
        """Register every mapped class of a declarative base, a registry or an iterable of models."""
        models = all_model(source) if hasattr(source, 'registry') or hasattr(source, 'mappers') else source
        report = RegistrationReport()
        for model in models:
            report.results.append(self.register(model))
        log.info('%s resources registered, %s skipped, %s failed', len(report.registered),
                 len(report.skipped), len(report.failed))
        return report

    def mount_routes(self, router) -> int:
        """Add the routes not yet mounted on `router`; returns how many were added."""
        start = self._mounted.get(id(router), 0)
        for route in self._routes[start:]:
            router.add_api_route(route.path, route.handler, methods=[route.method], name=route.name,
                                 dependencies=[_dependency(m) for m in route.middleware],
                                 response_class=OrjsonResponse)
        self._mounted[id(router)] = len(self._routes)
        return len(self._routes) - start

    def api_docs(self) -> str:
        """The API Blueprint documentation of every registered model."""
        return (NEW_LINE * 2).join((NEW_LINE * 2).join(docs.values()) for docs in self._docs.values())

    render_documentation = api_docs
