"""
HTTP routes.

    contact  — POST /contact
    health   — GET / and GET /health
    debug    — GET /debug/provider, GET /debug/{provider}

Each router is mounted twice by the app factory: at the root and under
``/api``.
"""
