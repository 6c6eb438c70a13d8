from workreplica.remote.base import RemoteSource
from workreplica.remote.client import AdoClient

__all__ = ["AdoClient", "RemoteSource"]
