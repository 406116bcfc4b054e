import pytest
from sqlalchemy import JSON, Column
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from jsalchemy_rest.resources.descriptors import (NO_DEFAULT, _semantic_type, RestOptions, describe_model, references,
                                                  rest_options, selected_fields, uneditable_fields)
from fixtures import Broken, Note, Post, Tag, User


def test_selected_fields():
    descriptor = describe_model(Post)
    assert selected_fields(descriptor) == ('id', 'title', 'body', 'author', 'status', 'created', 'tags',
                                           'version')
    assert 'secret' not in descriptor.selected
    assert selected_fields(describe_model(User)) == ('id', 'name')


def test_uneditable_fields():
    assert uneditable_fields(describe_model(Post)) == {'created'}
    assert uneditable_fields(describe_model(Tag)) == frozenset()


def test_describe_model():
    descriptor = describe_model(Post)
    assert descriptor.name == 'Post'
    assert descriptor.collection == 'posts'
    assert descriptor.endpoint == 'posts'
    assert descriptor.param == 'post'
    assert descriptor.key == 'id'
    assert descriptor.find_by == 'id'
    assert descriptor.version_key == 'version'
    assert describe_model(Post) is descriptor

    fields = {f.path: f for f in descriptor.fields}
    assert fields['title'].type == 'string'
    assert fields['title'].required
    assert not fields['secret'].required
    assert not fields['version'].required
    assert fields['id'].primary_key
    assert fields['status'].type == 'enum'
    assert fields['status'].enum_values == ('draft', 'published')
    assert fields['status'].default == 'draft'
    assert fields['body'].default == ''
    assert fields['secret'].default is NO_DEFAULT
    assert fields['tags'].default is NO_DEFAULT
    assert fields['created'].type == 'number'
    assert not fields['created'].editable


def test_relationship_fields():
    descriptor = describe_model(Post)
    author, tags = descriptor.field('author'), descriptor.field('tags')
    assert author.type == 'reference' and author.ref == 'user' and not author.is_list
    assert tags.type == 'references' and tags.ref == 'tag' and tags.is_list
    assert [f.path for f in descriptor.relationships] == ['author', 'tags']

    targets = references(descriptor)
    assert targets['author'].model is User
    assert targets['tags'].model is Tag


def test_autokey():
    descriptor = describe_model(Tag)
    assert descriptor.key == 'id'
    assert descriptor.find_by == 'slug'


def test_rest_options():
    options = rest_options(Post)
    assert options.enabled
    assert options.operations == ('list', 'show', 'create', 'update', 'delete')
    assert options.relationships == ('tags',)
    assert len(options.hooks['delete']) == 1
    assert not rest_options(Note).enabled


def test_rest_options_inheritance():

    class Base(DeclarativeBase):
        pass

    class Exposed:
        __rest__ = {'enabled': True, 'operations': 'list show'}

    class Item(Exposed, Base):
        __tablename__ = 'item'
        __rest__ = {'operations': 'list', 'collection': 'Goods'}

        id: Mapped[int] = mapped_column(primary_key=True)

    options = rest_options(Item)
    assert options.enabled
    assert options.operations == ('list',)
    assert describe_model(Item).collection == 'goods'


def test_invalid_options():
    with pytest.raises(ValueError):
        RestOptions(enabled=True)
    with pytest.raises(ValueError):
        RestOptions(enabled=True, operations='list publish')
    with pytest.raises(ValueError):
        RestOptions(enabled=True, operations='list', unknown=1)


def test_missing_autokey():
    with pytest.raises(ValueError, match='autokey'):
        describe_model(Broken)


def test_json_columns():
    assert _semantic_type(Column('meta', JSON)) == ('object', None)
    assert describe_model(Post).field('tags').type == 'references'
