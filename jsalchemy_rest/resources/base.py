from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Tuple

from starlette.requests import Request
from starlette.responses import Response

Handler = Callable[[Request], Awaitable[Response]]


@dataclass(frozen=True)
class RouteDescriptor:
    """A generated route, ready to be added to a router."""
    method: str
    path: str
    handler: Handler
    middleware: Tuple[Any, ...] = ()
    operation: str = ''
    resource: str = ''

    @property
    def name(self) -> str:
        return f'{self.resource}_{self.operation}_{self.method.lower()}'

    @property
    def signature(self) -> Tuple[str, str]:
        return self.method, self.path


class WebResource:
    """A collection exposed through REST, one factory per operation."""

    def list(self, middleware: Tuple = ()) -> RouteDescriptor:
        """Get the list of `model` you want to get"""
        raise NotImplementedError()

    def show(self, middleware: Tuple = ()) -> RouteDescriptor:
        raise NotImplementedError()

    def create(self, middleware: Tuple = ()) -> RouteDescriptor:
        raise NotImplementedError()

    def update(self, middleware: Tuple = ()) -> Tuple[RouteDescriptor, ...]:
        raise NotImplementedError()

    def delete(self, middleware: Tuple = ()) -> RouteDescriptor:
        raise NotImplementedError()

    def relationship(self, name: str, middleware: Tuple = ()) -> RouteDescriptor:
        raise NotImplementedError()

    def routes(self) -> Tuple[RouteDescriptor, ...]:
        raise NotImplementedError()
