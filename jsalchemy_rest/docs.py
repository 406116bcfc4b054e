"""API Blueprint documentation of the generated endpoints.

Every model gets a `model` block plus one block per enabled operation; the
blocks are rendered with jinja2 so that no field name can be mistaken for a
placeholder."""
from enum import Enum
from typing import Any

from jinja2 import Environment, StrictUndefined

from .resources.descriptors import NO_DEFAULT, FieldDescriptor, ModelDescriptor

NEW_LINE = '\n'
TAB = '    '

DOC_TEMPLATES = {
    'model': '# Endpoint for {{ name }} [{{ root }}{{ endpoint }}]\n'
             'This endpoint will provide all the required methods available for {{ name }}\n\n'
             '+ Attributes\n{{ attributes }}\n\n',
    'list': '## List all {{ name }} [GET {{ root }}{{ endpoint }}]\n'
            'Retrieves the list of {{ name }}\n\n'
            '+ Response 200 (application/json)',
    'show': '## Retrieve {{ name }} [GET {{ root }}{{ endpoint }}/{id}]\n'
            'Retrieves item with the id\n\n'
            '+ Response 200 (application/json)',
    'create': '## Create a {{ name }} [POST {{ root }}{{ endpoint }}]\n\n'
              '+ Attributes\n{{ attributes }}\n\n'
              '+ Response 200 (application/json)',
    'update': '## Updates a {{ name }} [PUT {{ root }}{{ endpoint }}]\n\n'
              '+ Attributes\n{{ attributes }}\n\n'
              '+ Response 200 (application/json)',
    'delete': '## Deletes an item from {{ name }} [DELETE {{ root }}{{ endpoint }}/{id}]\n'
              'Delete a {{ name }}. **Warning:** This action **permanently** removes '
              'the {{ name }} from the database.\n\n'
              '+ Response 200 (application/json)',
}

WITH_ATTRIBUTES = {'model', 'create', 'update'}

TYPE_NAMES = {
    'objectid': 'object',
    'reference': 'object',
    'references': 'array',
    'enum': 'string',
}

environment = Environment(undefined=StrictUndefined, keep_trailing_newline=True, autoescape=False)
templates = {name: environment.from_string(source) for name, source in DOC_TEMPLATES.items()}


def convert_type(field_type: str) -> str:
    field_type = field_type.lower()
    return TYPE_NAMES.get(field_type, field_type)


def convert_default(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if value is None or value == '':
        return "''"
    return str(value)


def render_attribute(field: FieldDescriptor) -> str:
    lines = [f'{TAB}+ {field.path} ({convert_type(field.type)}{", required" if field.required else ""})']
    if field.enum_values:
        lines.append(f'{TAB * 2}+ Options: {", ".join(field.enum_values)}')
    if field.default is not NO_DEFAULT:
        lines.append(f'{TAB * 2}+ Default: {convert_default(field.default)}')
    if field.ref:
        lines.append(f'{TAB * 2}+ Reference: {field.ref}')
    return NEW_LINE.join(lines)


def render_attributes(descriptor: ModelDescriptor) -> str:
    selected = set(descriptor.selected)
    return NEW_LINE.join(render_attribute(f) for f in descriptor.fields if f.path in selected)


def render(operation: str, descriptor: ModelDescriptor, root: str) -> str:
    """Documentation block of `operation` on the model described by `descriptor`."""
    attributes = render_attributes(descriptor) if operation in WITH_ATTRIBUTES else ''
    return templates[operation].render(name=descriptor.name, root=root, endpoint=descriptor.endpoint,
                                       attributes=attributes)
