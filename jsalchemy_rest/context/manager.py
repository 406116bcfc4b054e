from contextvars import ContextVar, Token
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession


class ContextManager:
    """Per-request database context.

    Every generated handler runs inside `async with context_manager():`, which
    binds a fresh `AsyncSession` to the `db` proxy, commits it when the
    handler succeeds and rolls it back otherwise."""

    class Context:
        def __init__(self, manager: 'ContextManager'):
            self.manager = manager
            self.session: AsyncSession | None = None
            self.token: Token | None = None

        async def __aenter__(self):
            self.session = self.manager.session_maker()
            self.token = db.update(self.session)
            return self

        async def __aexit__(self, exc_type, exc_val, exc_tb):
            try:
                if exc_type is None:
                    await self.session.commit()
                else:
                    await self.session.rollback()
            finally:
                await self.session.close()
                db.reset(self.token)

    def __init__(self, session_maker: Callable[[], AsyncSession]):
        self.session_maker = session_maker

    def __call__(self):
        return self.Context(self)


class ContextProxy:
    def __init__(self, name: str):
        self.__dict__['name'] = name
        self.__dict__['__var'] = ContextVar(name)

    def update(self, obj: object) -> Token:
        return self.__dict__['__var'].set(obj)

    def reset(self, token: Token) -> None:
        self.__dict__['__var'].reset(token)

    def __getattr__(self, item: str):
        return getattr(self.__dict__['__var'].get(), item)

    def __setattr__(self, key, value):
        setattr(self.__dict__['__var'].get(), key, value)

    def __getitem__(self, item):
        return self.__dict__['__var'].get()[item]

    def __setitem__(self, key, value):
        self.__dict__['__var'].get()[key] = value


db = ContextProxy('db_session')
