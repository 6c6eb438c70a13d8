from workreplica.rpc.server import RpcServer

__all__ = ["RpcServer"]
