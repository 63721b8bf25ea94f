"""
UDP Multicast Socket

Design Decision: Transport Surface
==================================

Options Considered:
1. Raw blocking socket driven by a receive thread
   - Simple, no event loop needed
   - Bind errors come back synchronously, no "listening" moment

2. asyncio DatagramProtocol via create_datagram_endpoint
   - Same event loop as the rest of the node
   - connection_made is a natural "socket is listening" event
   - Errors arrive through the loop, like everything else

Decision: asyncio endpoint wrapped in an event-style socket object
- bind() only *requests* the bind, the work runs as a task on the loop
- Handlers registered right after bind() always observe the outcome
- Socket options (broadcast, membership) stay plain setsockopt calls

Events:
- listening: socket bound and endpoint ready
- error: bind/endpoint failure or an error reported by the transport
- message: datagram received (payload is not interpreted here)
"""

import asyncio
import logging
import socket
from typing import Callable, Optional, List, Tuple

logger = logging.getLogger(__name__)

# Interface used for membership when none is given (kernel picks one)
ANY_INTERFACE = '0.0.0.0'

ListeningCallback = Callable[[], None]
ErrorCallback = Callable[[BaseException], None]
MessageCallback = Callable[[bytes, Tuple[str, int]], None]


class _MulticastProtocol(asyncio.DatagramProtocol):
    """Forwards asyncio transport events to the owning MulticastSocket."""

    def __init__(self, owner: 'MulticastSocket'):
        self._owner = owner

    def connection_made(self, transport: asyncio.DatagramTransport):
        """Called when the UDP socket is ready."""
        self._owner._on_connection_made(transport)

    def connection_lost(self, exc):
        logger.debug(f"Multicast socket closed ({exc})")

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        self._owner._emit_message(data, addr)

    def error_received(self, exc):
        """Called when a send or receive operation fails."""
        logger.error(f"Multicast socket error: {exc}")
        self._owner._emit_error(exc)


class MulticastSocket:
    """
    A UDP/IPv4 socket that can join multicast groups.

    Mirrors the event-driven socket model: request a bind, then wait for
    the 'listening' event before touching multicast options.
    """

    def __init__(self, reuse_addr: bool = True):
        """
        Create the underlying socket.

        Args:
            reuse_addr: Allow several processes to bind the same port
                        (needed for several nodes on one host)
        """
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)

        if reuse_addr:
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

            # SO_REUSEPORT only exists on some platforms (macOS/Linux)
            if hasattr(socket, 'SO_REUSEPORT'):
                try:
                    self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError as e:
                    logger.debug(f"SO_REUSEPORT not supported: {e}")

        self._sock.setblocking(False)

        self._transport: Optional[asyncio.DatagramTransport] = None
        self._bind_task: Optional[asyncio.Task] = None

        self._listening_callbacks: List[ListeningCallback] = []
        self._error_callbacks: List[ErrorCallback] = []
        self._message_callbacks: List[MessageCallback] = []

        self._listening = False
        self._closed = False

    @property
    def is_listening(self) -> bool:
        return self._listening

    def on_listening(self, callback: ListeningCallback):
        """Register a callback for when the socket is bound and ready."""
        self._listening_callbacks.append(callback)

    def on_error(self, callback: ErrorCallback):
        """Register a callback for socket errors."""
        self._error_callbacks.append(callback)

    def on_message(self, callback: MessageCallback):
        """Register a callback for received datagrams."""
        self._message_callbacks.append(callback)

    def bind(self, port: int, host: str = ''):
        """
        Request a bind to (host, port).

        Returns immediately. The outcome is reported through the
        'listening' or 'error' callbacks once the event loop runs.
        Must be called with a running event loop.
        """
        if self._closed:
            raise OSError("Socket is closed")
        if self._bind_task is not None:
            raise OSError("Socket bind already requested")

        loop = asyncio.get_running_loop()
        self._bind_task = loop.create_task(self._bind(host, port))

    async def _bind(self, host: str, port: int):
        loop = asyncio.get_running_loop()

        try:
            self._sock.bind((host, port))

            # connection_made fires from inside this call
            await loop.create_datagram_endpoint(
                lambda: _MulticastProtocol(self),
                sock=self._sock,
            )
        except OSError as e:
            logger.error(f"Failed to bind multicast socket to port {port}: {e}")
            self._emit_error(e)

    def set_broadcast(self, flag: bool):
        """Enable or disable sending to broadcast addresses."""
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1 if flag else 0)

    def add_membership(self, group: str, interface: str = ANY_INTERFACE):
        """
        Join a multicast group.

        Raises OSError if the address is malformed or the network stack
        rejects the membership.
        """
        self._sock.setsockopt(
            socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, self._mreq(group, interface)
        )
        logger.debug(f"Joined multicast group {group} on {interface}")

    def drop_membership(self, group: str, interface: str = ANY_INTERFACE):
        """Leave a multicast group joined with add_membership."""
        self._sock.setsockopt(
            socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, self._mreq(group, interface)
        )
        logger.debug(f"Left multicast group {group} on {interface}")

    def address(self) -> Optional[Tuple[str, int]]:
        """Get the bound (host, port), or None if not listening."""
        if not self._listening or self._closed:
            return None
        return self._sock.getsockname()

    def close(self):
        """Release the socket. Safe to call more than once."""
        if self._closed:
            return

        self._closed = True
        self._listening = False

        if self._bind_task and not self._bind_task.done():
            self._bind_task.cancel()

        if self._transport:
            # Transport owns the socket once the endpoint exists
            self._transport.close()
            self._transport = None
        else:
            self._sock.close()

    @staticmethod
    def _mreq(group: str, interface: str) -> bytes:
        # struct ip_mreq: group address followed by interface address
        return socket.inet_aton(group) + socket.inet_aton(interface)

    def _on_connection_made(self, transport: asyncio.DatagramTransport):
        if self._closed:
            # Closed while the endpoint was being set up
            transport.close()
            return

        self._transport = transport
        self._listening = True
        logger.info(f"Multicast socket listening on {transport.get_extra_info('sockname')}")

        for callback in self._listening_callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Listening callback error: {e}")

    def _emit_error(self, exc: BaseException):
        if self._closed:
            return
        for callback in self._error_callbacks:
            try:
                callback(exc)
            except Exception as e:
                logger.error(f"Error callback error: {e}")

    def _emit_message(self, data: bytes, addr: Tuple[str, int]):
        for callback in self._message_callbacks:
            try:
                callback(data, addr)
            except Exception as e:
                logger.error(f"Message callback error: {e}")
