"""ChainDB: a tagged file catalog backed by an Elasticsearch-compatible index."""
from .app_factory import create_app

__all__ = ["create_app"]
