"""Infrastructure layer — database, caches, graph engine, read repositories.

This layer depends on stdlib and third-party libs (SQLAlchemy, NetworkX,
structlog) plus the domain enums and models it hydrates.
It must never import from services, commands, or output.
"""
