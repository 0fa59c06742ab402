from __future__ import annotations

import logging
import socket
from itertools import count
from queue import Empty, Full, Queue
from threading import Event, Lock, Thread
from typing import Dict, List, Optional

from messages import Message, encode_message

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIBER_BUFFER = 64


class Subscription:
    """Bounded mailbox of one subscriber.

    When the mailbox is full the oldest message is discarded to make room,
    so a stalled reader only ever loses messages and never slows the
    publisher down.
    """

    def __init__(self, broadcaster: "Broadcaster", subscriber_id: int, maxsize: int):
        self.subscriber_id = subscriber_id
        self.dropped = 0
        self._broadcaster = broadcaster
        self._queue: "Queue[Message]" = Queue(maxsize=maxsize)
        self._closed = Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, message: Message) -> None:
        while not self._closed.is_set():
            try:
                self._queue.put_nowait(message)
                return
            except Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except Empty:
                    pass

    def get(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Next message, or None on timeout or once the subscription is closed."""
        if self._closed.is_set():
            return None
        try:
            return self._queue.get(timeout=timeout)
        except Empty:
            return None

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._broadcaster._unsubscribe(self.subscriber_id)


class Broadcaster:
    def __init__(self, buffer_size: int = DEFAULT_SUBSCRIBER_BUFFER):
        self.buffer_size = max(1, buffer_size)
        self._subscribers: Dict[int, Subscription] = {}
        self._ids = count(1)
        self._lock = Lock()
        self._closed = False

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        with self._lock:
            subscription = Subscription(self, next(self._ids), maxsize or self.buffer_size)
            if self._closed:
                subscription._closed.set()
            else:
                self._subscribers[subscription.subscriber_id] = subscription
        logger.debug("Subscriber %s attached", subscription.subscriber_id)
        return subscription

    def publish(self, message: Message) -> int:
        """Hand a message to every current subscriber; returns how many got it."""
        with self._lock:
            targets: List[Subscription] = list(self._subscribers.values())
        for subscription in targets:
            subscription.offer(message)
        return len(targets)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            targets = list(self._subscribers.values())
        for subscription in targets:
            subscription.close()
        logger.info("Broadcaster closed (%s subscribers detached)", len(targets))

    def _unsubscribe(self, subscriber_id: int) -> None:
        with self._lock:
            self._subscribers.pop(subscriber_id, None)
        logger.debug("Subscriber %s detached", subscriber_id)


class SubscriberServer:
    """Streams broadcast messages to TCP clients, one JSON document per line.

    The accept loop and every client writer run on their own threads; the
    tick thread only ever touches the in-process Broadcaster.
    """

    def __init__(
        self,
        broadcaster: Broadcaster,
        host: str = "127.0.0.1",
        port: int = 5555,
        send_timeout: float = 2.0,
    ):
        self.broadcaster = broadcaster
        self.host = host
        self.port = port
        self.send_timeout = send_timeout
        self._server_sock: Optional[socket.socket] = None
        self._stop_event = Event()
        self._thread: Optional[Thread] = None
        self._clients: Dict[int, socket.socket] = {}
        self._clients_lock = Lock()

    @property
    def address(self) -> tuple:
        if self._server_sock is None:
            return (self.host, self.port)
        return self._server_sock.getsockname()[:2]

    def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.host, self.port))
        sock.listen(16)
        sock.settimeout(0.5)
        self._server_sock = sock
        self._stop_event.clear()
        self._thread = Thread(target=self._accept_loop, name="subscriber-accept", daemon=True)
        self._thread.start()
        logger.info("Subscribe channel listening on %s:%s", *self.address)

    def shutdown(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
            self._thread = None
        if self._server_sock:
            self._server_sock.close()
            self._server_sock = None
        with self._clients_lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            _close_quietly(client)

    def _accept_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                client, addr = self._server_sock.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if not self._stop_event.is_set():
                    logger.error("Subscribe channel accept failed: %s", exc)
                break
            client.settimeout(self.send_timeout)
            subscription = self.broadcaster.subscribe()
            with self._clients_lock:
                self._clients[subscription.subscriber_id] = client
            logger.info("Subscriber %s connected from %s:%s", subscription.subscriber_id, *addr[:2])
            Thread(
                target=self._serve_client,
                args=(client, subscription),
                name=f"subscriber-{subscription.subscriber_id}",
                daemon=True,
            ).start()

    def _serve_client(self, client: socket.socket, subscription: Subscription) -> None:
        try:
            while not self._stop_event.is_set() and not subscription.closed:
                message = subscription.get(timeout=0.5)
                if message is None:
                    continue
                client.sendall(encode_message(message))
        except OSError as exc:
            logger.info("Dropping subscriber %s: %s", subscription.subscriber_id, exc)
        finally:
            subscription.close()
            with self._clients_lock:
                self._clients.pop(subscription.subscriber_id, None)
            _close_quietly(client)


def _close_quietly(sock: socket.socket) -> None:
    try:
        sock.close()
    except OSError:
        logger.debug("Socket close failed", exc_info=True)
