import pytest
import pytest_asyncio
from fastapi import FastAPI, Header, HTTPException
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, Enum, ForeignKey
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from jsalchemy_rest import ValidationError, create_rest


class Base(AsyncAttrs, DeclarativeBase):
    pass


async def require_token(x_token: str | None = Header(default=None)):
    if x_token != 'secret':
        raise HTTPException(status_code=403, detail='Forbidden')


class User(Base):
    __tablename__ = 'user'
    __rest__ = {'enabled': True, 'operations': 'list show create'}

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str]
    password: Mapped[str | None] = mapped_column(info={'rest_selected': False})


class Tag(Base):
    __tablename__ = 'tag'
    __rest__ = {'enabled': True, 'operations': 'list show create', 'autokey': {'path': 'slug'}}

    id: Mapped[int] = mapped_column(primary_key=True)
    slug: Mapped[str] = mapped_column(unique=True)
    label: Mapped[str | None]


class Post(Base):
    __tablename__ = 'post'
    __rest__ = {
        'enabled': True,
        'operations': 'list show create update delete',
        'relationships': 'tags',
        'hooks': {'delete': [require_token]},
    }

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str]
    body: Mapped[str] = mapped_column(default='')
    secret: Mapped[str | None] = mapped_column(info={'rest_selected': False})
    author: Mapped[int | None] = mapped_column(ForeignKey('user.id'))
    status: Mapped[str] = mapped_column(Enum('draft', 'published', name='post_status'), default='draft')
    created: Mapped[int] = mapped_column(default=0, info={'rest_editable': False})
    tags: Mapped[list] = mapped_column(JSON, default=list, info={'items': {'ref': 'tag'}})
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {'version_id_col': version}

    @staticmethod
    def validate_title(value):
        if not value or not value.strip():
            raise ValidationError('title cannot be empty')
        return value.strip()


class Note(Base):
    """Never exposed."""
    __tablename__ = 'note'

    id: Mapped[int] = mapped_column(primary_key=True)
    text: Mapped[str]


class Broken(Base):
    __tablename__ = 'broken'
    __rest__ = {'enabled': True, 'operations': 'list', 'autokey': 'missing'}

    id: Mapped[int] = mapped_column(primary_key=True)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Sqlite database in a temporary file, with every table created."""
    engine = create_async_engine(f'sqlite+aiosqlite:///{tmp_path}/test.db', echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def app(session_maker):
    app = FastAPI()
    create_rest(app, Base, session_maker)
    return app


@pytest.fixture
def registry(app):
    return app.state.rest


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as client:
        yield client


@pytest_asyncio.fixture
async def blog(client):
    """A user, three tags and two posts."""
    await client.post('/api/users', json={'name': 'alice', 'password': 'wonderland'})
    for slug in ('python', 'rust', 'sql'):
        await client.post('/api/tags', json={'slug': slug, 'label': slug.capitalize()})
    first = await client.post('/api/posts', json={'title': 'Hello', 'author': 1, 'tags': [3, 1, 2],
                                                  'secret': 'hidden', 'status': 'published'})
    second = await client.post('/api/posts', json={'title': 'World', 'author': 1})
    return first.json(), second.json()
