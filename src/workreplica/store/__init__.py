from workreplica.store.replica import ReplicaStore

__all__ = ["ReplicaStore"]
