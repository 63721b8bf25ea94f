"""
Home Node - Discovery State Machine

A home node joins a UDP multicast group so that other nodes on the LAN
can find it, then hands over to a communications phase.

    IDLE --start_broadcasting--> BINDING --listening--> BROADCASTING
    BROADCASTING --start_communications--> COMMUNICATING
    BINDING --bind error / join error / timeout--> IDLE
    any --stop--> IDLE

Multicast address and port can only be changed while IDLE.
"""

import asyncio
import functools
import ipaddress
import logging
import threading
from enum import Enum
from typing import Optional, Callable, Any

from .communications import Communicator
from .discovery import MulticastSocket
from .errors import BindError, MulticastJoinError, DiscoveryTimeout

logger = logging.getLogger(__name__)

DEFAULT_MULTICAST_ADDRESS = '239.255.0.1'
DEFAULT_BROADCAST_PORT = 49152

MIN_PORT = 1
MAX_PORT = 65535

# Called as factory(reuse_addr=True), returns a MulticastSocket-like object
SocketFactory = Callable[..., Any]


class NodeState(Enum):
    """Lifecycle states of a discovery node."""
    IDLE = "idle"
    BINDING = "binding"
    BROADCASTING = "broadcasting"
    COMMUNICATING = "communicating"


def is_valid_multicast_address(address) -> bool:
    """Check for a dotted-quad IPv4 address in 224.0.0.0/4."""
    if not isinstance(address, str):
        return False
    try:
        return ipaddress.IPv4Address(address).is_multicast
    except ValueError:
        return False


def _consume_exception(future: asyncio.Future):
    # Failures are logged by _fail, callers may drop the future
    if not future.cancelled():
        future.exception()


def is_valid_port(port) -> bool:
    """Check for an int port in 1-65535 (bools are not ports)."""
    if isinstance(port, bool) or not isinstance(port, int):
        return False
    return MIN_PORT <= port <= MAX_PORT


class DiscoveryNode:
    """
    A node taking part in multicast discovery.

    Usage:
        node = DiscoveryNode('kitchen')
        node.set_broadcast_port(5353)
        await node.start_broadcasting()
        node.start_communications(my_communicator)
        ...
        node.stop()

    Or, with guaranteed cleanup:
        async with DiscoveryNode('kitchen') as node:
            ...

    Configuration setters are safe to call from any thread. Everything
    else must run on the event loop thread.
    """

    def __init__(self, name: str,
                 socket_factory: Optional[SocketFactory] = None,
                 communicator: Optional[Communicator] = None,
                 listen_timeout: Optional[float] = None):
        """
        Create an idle node. No I/O happens here.

        Args:
            name: Node name, fixed for the node's lifetime
            socket_factory: Creates the UDP socket (default: MulticastSocket)
            communicator: Default collaborator for start_communications()
            listen_timeout: Seconds to wait for the socket to listen,
                            None or 0 to wait forever
        """
        self._name = name
        self._multicast_address = DEFAULT_MULTICAST_ADDRESS
        self._broadcast_port = DEFAULT_BROADCAST_PORT

        self._socket_factory = socket_factory or MulticastSocket
        self._communicator = communicator
        self._active_communicator: Optional[Communicator] = None
        self._listen_timeout = listen_timeout

        self.socket = None

        # Guards state and configuration
        self._lock = threading.RLock()
        self._state = NodeState.IDLE
        self._ready: Optional[asyncio.Future] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def multicast_address(self) -> str:
        return self._multicast_address

    @property
    def broadcast_port(self) -> int:
        return self._broadcast_port

    @property
    def state(self) -> NodeState:
        return self._state

    @property
    def is_broadcasting(self) -> bool:
        return self._state in (NodeState.BROADCASTING, NodeState.COMMUNICATING)

    @property
    def is_communicating(self) -> bool:
        return self._state is NodeState.COMMUNICATING

    # === Configuration ===

    def set_multicast_address(self, address: str) -> bool:
        """
        Change the multicast group address.

        Returns False, leaving the address unchanged, if the address is not
        an IPv4 multicast address or the node is not idle.
        """
        if not is_valid_multicast_address(address):
            logger.warning(f"Rejected multicast address {address!r}: not an IPv4 multicast address")
            return False

        with self._lock:
            if self._state is not NodeState.IDLE:
                logger.warning(
                    f"Rejected multicast address {address}: node is {self._state.value}"
                )
                return False

            self._multicast_address = address
            return True

    def set_broadcast_port(self, port: int) -> bool:
        """
        Change the broadcast port.

        Returns False, leaving the port unchanged, if the port is outside
        1-65535 or the node is not idle.
        """
        if not is_valid_port(port):
            logger.warning(f"Rejected broadcast port {port!r}: must be an int in {MIN_PORT}-{MAX_PORT}")
            return False

        with self._lock:
            if self._state is not NodeState.IDLE:
                logger.warning(f"Rejected broadcast port {port}: node is {self._state.value}")
                return False

            self._broadcast_port = port
            return True

    # === Discovery ===

    def start_broadcasting(self) -> asyncio.Future:
        """
        Open the broadcast socket and join the multicast group.

        Returns immediately with a future that resolves to this node once
        it is broadcasting, or fails with BindError, MulticastJoinError or
        DiscoveryTimeout. The node is back to IDLE with no socket after a
        failure.

        Calling this again while binding or broadcasting returns the
        existing future; no second socket is created.
        """
        loop = asyncio.get_running_loop()

        with self._lock:
            if self._state is not NodeState.IDLE:
                logger.debug(f"start_broadcasting ignored: node is {self._state.value}")
                return self._ready

            self._ready = loop.create_future()
            self._ready.add_done_callback(_consume_exception)
            port = self._broadcast_port

            try:
                self.socket = self._socket_factory(reuse_addr=True)
            except OSError as e:
                self._fail(BindError(port, e))
                return self._ready

            self._state = NodeState.BINDING

            # Bind is requested before the listening handler is attached
            try:
                self.socket.bind(port)
            except OSError as e:
                self._fail(BindError(port, e))
                return self._ready

            # Events from a replaced socket are ignored
            sock = self.socket
            sock.on_listening(functools.partial(self.on_broadcast_socket_listening, sock))
            sock.on_error(functools.partial(self._on_broadcast_socket_error, sock))

            if self._listen_timeout:
                self._timeout_handle = loop.call_later(
                    self._listen_timeout, self._on_listen_timeout
                )

        logger.info(f"Node {self._name}: binding broadcast socket on port {port}")
        return self._ready

    def on_broadcast_socket_listening(self, sock=None):
        """
        Finish startup once the socket is bound.

        Enables broadcast, joins the multicast group, then marks the node
        as broadcasting. Runs on the event loop, invoked by the socket.

        Args:
            sock: The socket reporting the event, None for the current one
        """
        with self._lock:
            if self._state is not NodeState.BINDING or self.socket is None:
                logger.debug(f"Listening event ignored: node is {self._state.value}")
                return
            if sock is not None and sock is not self.socket:
                logger.debug("Listening event ignored: socket was replaced")
                return

            address = self._multicast_address

            try:
                self.socket.set_broadcast(True)
                self.socket.add_membership(address)
            except OSError as e:
                self._fail(MulticastJoinError(address, e))
                return

            self._cancel_timeout()
            self._state = NodeState.BROADCASTING

            if self._ready and not self._ready.done():
                self._ready.set_result(self)

        logger.info(
            f"Node {self._name}: broadcasting on {address}:{self._broadcast_port}"
        )

    def _on_broadcast_socket_error(self, sock, exc: BaseException):
        with self._lock:
            if sock is not self.socket:
                logger.debug(f"Error from replaced socket ignored: {exc}")
                return
            if self._state is not NodeState.BINDING:
                # Errors after startup belong to the communications phase
                logger.debug(f"Socket error while {self._state.value}: {exc}")
                return

            self._fail(BindError(self._broadcast_port, exc))

    def _on_listen_timeout(self):
        with self._lock:
            self._timeout_handle = None
            if self._state is not NodeState.BINDING:
                return

            self._fail(DiscoveryTimeout(self._broadcast_port, self._listen_timeout))

    def _fail(self, error: Exception):
        """Abort startup: release the socket, go back to IDLE, fail the future."""
        logger.error(f"Node {self._name}: {error}")

        self._release_socket()
        self._state = NodeState.IDLE

        if self._ready and not self._ready.done():
            self._ready.set_exception(error)

    # === Communications ===

    def start_communications(self, communicator: Optional[Communicator] = None) -> bool:
        """
        Hand control to the communications phase.

        Only possible while BROADCASTING. Returns False otherwise. If the
        communicator's start() raises, the node stays BROADCASTING and the
        error propagates.

        Args:
            communicator: Overrides the one given to the constructor
        """
        with self._lock:
            if self._state is not NodeState.BROADCASTING:
                logger.warning(
                    f"Cannot start communications: node is {self._state.value}"
                )
                return False

            communicator = communicator or self._communicator
            if communicator:
                communicator.start(self)

            self._active_communicator = communicator
            self._state = NodeState.COMMUNICATING

        logger.info(f"Node {self._name}: communications started")
        return True

    # === Lifecycle ===

    def stop(self):
        """
        Stop discovery and release the socket.

        Leaves the multicast group, closes the socket and cancels a pending
        start. The node is IDLE afterwards and can be reconfigured.
        """
        with self._lock:
            if self._state is NodeState.IDLE:
                return

            logger.info(f"Stopping node {self._name}...")

            if self._active_communicator:
                try:
                    self._active_communicator.stop()
                except Exception as e:
                    logger.error(f"Communicator stop failed: {e}")
                self._active_communicator = None

            if self.is_broadcasting and self.socket is not None:
                try:
                    self.socket.drop_membership(self._multicast_address)
                except OSError as e:
                    logger.debug(f"Drop membership: {e}")

            self._release_socket()
            self._state = NodeState.IDLE

            if self._ready and not self._ready.done():
                self._ready.cancel()

        logger.info(f"Node {self._name} stopped")

    async def start(self) -> 'DiscoveryNode':
        """Start broadcasting and wait until the node has joined the group."""
        return await self.start_broadcasting()

    async def __aenter__(self) -> 'DiscoveryNode':
        try:
            return await self.start()
        except BaseException:
            self.stop()
            raise

    async def __aexit__(self, exc_type, exc, tb):
        self.stop()

    def _release_socket(self):
        self._cancel_timeout()
        if self.socket is not None:
            self.socket.close()
            self.socket = None

    def _cancel_timeout(self):
        if self._timeout_handle:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    # === Info ===

    def get_stats(self) -> dict:
        """Get node status."""
        with self._lock:
            return {
                'name': self._name,
                'state': self._state.value,
                'multicast_address': self._multicast_address,
                'broadcast_port': self._broadcast_port,
                'broadcasting': self.is_broadcasting,
                'communicating': self.is_communicating,
                'socket_address': self.socket.address() if self.socket else None,
            }

    def __repr__(self) -> str:
        return f"DiscoveryNode({self._name!r}, state={self._state.value})"
