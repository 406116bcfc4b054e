from typing import Any

from orjson import dumps
from starlette.responses import Response

from .exceptions import NotFound
from .utils import json_default


class OrjsonResponse(Response):
    media_type = 'application/json'

    def render(self, content: Any) -> bytes:
        return dumps(content, default=json_default)


def not_found(collection: str, key) -> OrjsonResponse:
    """404 answer for a missing record: {status: 'missing', message}."""
    return OrjsonResponse(NotFound(collection, key).to_dict(), status_code=404)
