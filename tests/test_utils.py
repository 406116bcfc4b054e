from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import JSON, Column

from jsalchemy_rest.utils import cast_value, dict_merge, json_default, split_list, unique
from fixtures import Post


def column(name):
    return Post.__mapper__.column_attrs[name].columns[0]


def test_cast_value():
    assert cast_value(column('author'), '12') == 12
    assert cast_value(column('author'), None) is None
    assert cast_value(column('title'), 'x') == 'x'
    assert cast_value(column('tags'), [1, 2]) == [1, 2]
    with pytest.raises(ValueError):
        cast_value(column('author'), True)
    with pytest.raises(ValueError):
        cast_value(column('author'), 1.5)
    with pytest.raises(ValueError):
        cast_value(column('tags'), 'a,b')


def test_split_list():
    assert split_list(None) == []
    assert split_list('a,,b') == ['a', 'b']
    assert split_list('-a b,c', ', ') == ['-a', 'b', 'c']


def test_dict_merge():
    merged = dict_merge({'a': 1, 'c': {'x': 1}}, {'a': 2, 'b': 3, 'c': {'x': 2, 'y': 2}})
    assert merged == {'a': 1, 'b': 3, 'c': {'x': 1, 'y': 2}}


def test_json_default():
    assert json_default(Decimal('1.5')) == 1.5
    assert json_default(timedelta(minutes=1)) == 60
    assert json_default(b'raw') is None
    with pytest.raises(TypeError):
        json_default(object())


def test_unique():
    assert unique([3, 1, 3, 2, 1]) == [3, 1, 2]


def test_cast_json():
    meta = Column('meta', JSON)
    assert cast_value(meta, {'a': 1}) == {'a': 1}
    assert cast_value(meta, [1]) == [1]
    for value in ('a,b', 1, True):
        with pytest.raises(ValueError):
            cast_value(meta, value)
