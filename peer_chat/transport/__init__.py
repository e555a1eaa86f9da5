from peer_chat.transport.base import Connection, Endpoint, EndpointService
from peer_chat.transport.loopback import LoopbackNetwork
from peer_chat.transport.tcp import TcpNetwork

__all__ = ["Connection", "Endpoint", "EndpointService", "LoopbackNetwork", "TcpNetwork"]
