"""Vigil — live access-log and security-alert relay for monitoring dashboards.

Listens for PostgreSQL NOTIFY messages on the log and alert channels and
streams each new row to every connected browser over server-sent events,
next to plain JSON snapshot endpoints for the initial page load.

Quick start::

    import vigil

    vigil.serve(".")      # reads vigil.yaml / vigil.toml and PG_* env vars

Embedding::

    from vigil import VigilConfig, create_app

    app, relay, router = create_app(VigilConfig(...))

"""

__version__ = "0.1.0"
__all__ = [
    "VigilConfig",
    "__version__",
    "create_app",
    "load_config",
    "serve",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import vigil`` fast; Chirp and asyncpg load on first use.
    """
    if name == "VigilConfig":
        from vigil.config import VigilConfig

        return VigilConfig

    if name == "create_app":
        from vigil.app import create_app

        return create_app

    if name == "serve":
        from vigil.app import serve

        return serve

    if name == "load_config":
        from vigil.config_loader import load_config

        return load_config

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
