default_config = dict(
    api_root='/api/',
    docs_route='docs',
    error_handlers=True,
    db=dict(
        url='sqlite+aiosqlite:///:memory:',
    ),
)
