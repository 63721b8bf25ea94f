"""
Test doubles for the multicast transport.
"""

import asyncio
from typing import List, Optional


class FakeSocket:
    """
    Stands in for MulticastSocket.

    bind() schedules the 'listening' (or 'error') event on the running
    loop, like the real socket does, unless auto_listen is off.
    """

    def __init__(self, reuse_addr: bool = True, auto_listen: bool = True,
                 bind_error: Optional[BaseException] = None,
                 join_error: Optional[BaseException] = None):
        self.reuse_addr = reuse_addr
        self.auto_listen = auto_listen
        self.bind_error = bind_error
        self.join_error = join_error

        self.calls: List[tuple] = []
        self.port: Optional[int] = None
        self.broadcast = False
        self.memberships: List[str] = []
        self.closed = False

        self._listening_callbacks = []
        self._error_callbacks = []

    def bind(self, port, host=''):
        self.calls.append(('bind', port))
        self.port = port

        loop = asyncio.get_running_loop()
        if self.bind_error is not None:
            loop.call_soon(self.fire_error, self.bind_error)
        elif self.auto_listen:
            loop.call_soon(self.fire_listening)

    def on_listening(self, callback):
        self.calls.append(('on_listening',))
        self._listening_callbacks.append(callback)

    def on_error(self, callback):
        self.calls.append(('on_error',))
        self._error_callbacks.append(callback)

    def set_broadcast(self, flag):
        self.calls.append(('set_broadcast', flag))
        self.broadcast = flag

    def add_membership(self, group, interface='0.0.0.0'):
        self.calls.append(('add_membership', group))
        if self.join_error is not None:
            raise self.join_error
        self.memberships.append(group)

    def drop_membership(self, group, interface='0.0.0.0'):
        self.calls.append(('drop_membership', group))
        self.memberships.remove(group)

    def address(self):
        if self.closed or self.port is None:
            return None
        return ('0.0.0.0', self.port)

    def close(self):
        self.calls.append(('close',))
        self.closed = True

    def fire_listening(self):
        if self.closed:
            return
        for callback in self._listening_callbacks:
            callback()

    def fire_error(self, exc):
        if self.closed:
            return
        for callback in self._error_callbacks:
            callback(exc)


class FakeSocketFactory:
    """Creates FakeSockets with fixed options and remembers them."""

    def __init__(self, **options):
        self.options = options
        self.sockets: List[FakeSocket] = []

    def __call__(self, reuse_addr=True):
        sock = FakeSocket(reuse_addr=reuse_addr, **self.options)
        self.sockets.append(sock)
        return sock

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1]
