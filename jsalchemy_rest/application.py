from typing import Any, Callable, Dict

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from .app_config import default_config
from .exceptions import RestException
from .resources.manager import RestRegistry
from .responses import OrjsonResponse
from .utils import dict_merge


def base_environment(config: Dict[str, Any]) -> async_sessionmaker:
    """Build the session maker out of the `db` section of `config`."""
    db_config = dict(config['db'])
    db_uri = db_config.pop('url', None)
    if db_uri:
        engine = create_async_engine(db_uri, **db_config)
    else:
        engine = create_async_engine(**db_config)
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def rest_exception_handler(request: Request, exc: RestException) -> OrjsonResponse:
    return OrjsonResponse(exc.to_dict(), status_code=exc.status_code)


def install_error_handlers(app: FastAPI) -> None:
    """Render every `RestException` as JSON with its own status code."""
    app.add_exception_handler(RestException, rest_exception_handler)


def create_rest(app: FastAPI, source, session_maker: Callable[[], AsyncSession] | None = None,
                config: Dict[str, Any] | None = None, **overrides) -> RestRegistry:
    """Expose through `app` every REST enabled model of `source`.

    `source` is a declarative base, a registry or an iterable of mapped classes."""
    config = dict_merge(overrides, dict_merge(config or {}, default_config))
    if session_maker is None:
        session_maker = base_environment(config)

    registry = RestRegistry(session_maker, config['api_root'] or default_config['api_root'])
    registry.discover_and_register_all(source)

    if config['error_handlers']:
        install_error_handlers(app)
    if config['docs_route']:
        async def docs(request: Request) -> PlainTextResponse:
            return PlainTextResponse(registry.api_docs(), media_type='text/markdown')

        app.router.add_api_route(f'{registry.api_root}{config["docs_route"]}', docs, methods=['GET'],
                                 name='api_docs', response_class=PlainTextResponse)
    registry.mount_routes(app.router)
    app.state.rest = registry
    return registry
