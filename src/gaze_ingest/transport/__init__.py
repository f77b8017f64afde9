from .osc import ExactAddressDispatcher, LoggingOSCUDPServer
from .tcp import TcpSession

__all__ = ["ExactAddressDispatcher", "LoggingOSCUDPServer", "TcpSession"]
