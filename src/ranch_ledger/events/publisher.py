"""WebSocket event publisher for real-time dashboard updates.

The publisher keeps connections to dashboard clients and broadcasts ledger
events as they happen. It supports:
- Multiple concurrent client connections
- Event filtering by type or manager
- Buffering of recent events for late-joining clients
- Publishing from worker threads (sync pool, API threadpool)
"""

import asyncio
import contextlib
import json
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
import websockets
from websockets.asyncio.server import Server, ServerConnection

from ranch_ledger.config import get_settings
from ranch_ledger.events.types import EventType, RanchEvent

logger = structlog.get_logger(__name__)


@dataclass
class ClientConnection:
    """Represents a connected WebSocket client."""

    websocket: ServerConnection
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    subscribed_events: set[EventType] = field(default_factory=set)
    subscribed_managers: set[str] = field(default_factory=set)
    client_id: str = ""

    def __post_init__(self) -> None:
        if not self.client_id and self.websocket.remote_address:
            addr = self.websocket.remote_address
            self.client_id = f"{addr[0]}:{addr[1]}" if isinstance(addr, tuple) else str(addr)

    def __hash__(self) -> int:
        """Make hashable for use in sets (required for websockets v15+)."""
        return hash(id(self.websocket))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClientConnection):
            return False
        return self.websocket is other.websocket


class EventPublisher:
    """WebSocket server for publishing ledger events.

    Usage:
        publisher = EventPublisher()
        await publisher.start()

        # From any thread
        publisher.publish(some_event)

        await publisher.stop()
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        buffer_size: int = 100,
    ):
        settings = get_settings()
        self._host = host or settings.ws_host
        self._port = port or settings.ws_port
        self._buffer_size = buffer_size

        self._server: Server | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._clients: set[ClientConnection] = set()
        self._event_buffer: deque[RanchEvent] = deque(maxlen=buffer_size)
        self._buffer_lock = threading.Lock()
        self._is_running = False

        # Event hooks for external processing
        self._event_hooks: list[Callable[[RanchEvent], None]] = []

        self._logger = logger.bind(component="event_publisher")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def recent_events(self) -> list[RanchEvent]:
        with self._buffer_lock:
            return list(self._event_buffer)

    def add_event_hook(self, hook: Callable[[RanchEvent], None]) -> None:
        """Add a hook to be called for every event.

        Hooks are called synchronously, on the publishing thread, before
        broadcasting.
        """
        self._event_hooks.append(hook)

    def remove_event_hook(self, hook: Callable[[RanchEvent], None]) -> None:
        if hook in self._event_hooks:
            self._event_hooks.remove(hook)

    async def start(self) -> None:
        """Start the WebSocket server."""
        if self._is_running:
            self._logger.warning("publisher_already_running")
            return

        self._logger.info("starting_publisher", host=self._host, port=self._port)

        self._server = await websockets.serve(
            self._handle_client,
            self._host,
            self._port,
            ping_interval=30,
            ping_timeout=10,
        )
        self._loop = asyncio.get_running_loop()

        self._is_running = True
        self._logger.info("publisher_started", address=f"ws://{self._host}:{self._port}")

    async def stop(self) -> None:
        """Stop the WebSocket server and disconnect all clients."""
        if not self._is_running:
            return

        self._logger.info("stopping_publisher", client_count=len(self._clients))
        self._is_running = False

        close_tasks = [
            client.websocket.close(1001, "Server shutting down")
            for client in list(self._clients)
        ]
        if close_tasks:
            await asyncio.gather(*close_tasks, return_exceptions=True)

        self._clients.clear()

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        self._loop = None
        self._logger.info("publisher_stopped")

    async def _handle_client(self, websocket: ServerConnection) -> None:
        client = ClientConnection(websocket=websocket)
        self._clients.add(client)

        self._logger.info("client_connected", client_id=client.client_id)

        await self._send_event_history(client)

        try:
            async for message in websocket:
                await self._handle_message(client, message)
        except websockets.ConnectionClosed as e:
            self._logger.info(
                "client_disconnected",
                client_id=client.client_id,
                code=e.code,
                reason=e.reason,
            )
        except Exception as e:
            self._logger.error("client_error", client_id=client.client_id, error=str(e))
        finally:
            self._clients.discard(client)

    async def _handle_message(self, client: ClientConnection, message: str | bytes) -> None:
        """Handle an incoming message from a client.

        Supported message types:
        - subscribe: Subscribe to specific event types or managers
        - unsubscribe: Unsubscribe from event types or managers
        - ping: Health check
        """
        try:
            if isinstance(message, bytes):
                try:
                    message = message.decode("utf-8")
                except UnicodeDecodeError:
                    self._logger.warning("invalid_message_encoding", client_id=client.client_id)
                    return

            data = json.loads(message)
            msg_type = data.get("type", "")

            if msg_type == "subscribe":
                await self._handle_subscribe(client, data)
            elif msg_type == "unsubscribe":
                self._handle_unsubscribe(client, data)
            elif msg_type == "ping":
                await client.websocket.send(json.dumps({"type": "pong"}))
            else:
                self._logger.warning(
                    "unknown_message_type",
                    client_id=client.client_id,
                    msg_type=msg_type,
                )

        except json.JSONDecodeError:
            self._logger.warning("invalid_json", client_id=client.client_id)
        except Exception as e:
            self._logger.error("message_handling_error", error=str(e))

    async def _handle_subscribe(self, client: ClientConnection, data: dict[str, Any]) -> None:
        for et in data.get("event_types", []):
            with contextlib.suppress(ValueError):
                client.subscribed_events.add(EventType(et))

        for manager_id in data.get("manager_ids", []):
            client.subscribed_managers.add(str(manager_id))

        self._logger.debug(
            "client_subscribed",
            client_id=client.client_id,
            events=len(client.subscribed_events),
            managers=len(client.subscribed_managers),
        )

        await client.websocket.send(
            json.dumps(
                {
                    "type": "subscribed",
                    "event_types": sorted(et.value for et in client.subscribed_events),
                    "manager_ids": sorted(client.subscribed_managers),
                }
            )
        )

    def _handle_unsubscribe(self, client: ClientConnection, data: dict[str, Any]) -> None:
        for et in data.get("event_types", []):
            with contextlib.suppress(ValueError):
                client.subscribed_events.discard(EventType(et))

        for manager_id in data.get("manager_ids", []):
            client.subscribed_managers.discard(str(manager_id))

    async def _send_event_history(self, client: ClientConnection) -> None:
        events = self.recent_events
        if not events:
            return

        history = {
            "type": "event_history",
            "events": [event.to_dict() for event in events],
        }
        await client.websocket.send(json.dumps(history))

    def _should_send_to_client(self, client: ClientConnection, event: RanchEvent) -> bool:
        """Check if an event should be sent to a specific client.

        If the client has no subscriptions, it receives all events.
        """
        if not client.subscribed_events and not client.subscribed_managers:
            return True

        if client.subscribed_events and event.event_type not in client.subscribed_events:
            return False

        if client.subscribed_managers:
            manager_id = getattr(event, "manager_id", None)
            if manager_id and manager_id not in client.subscribed_managers:
                return False

        return True

    def _record(self, event: RanchEvent) -> None:
        with self._buffer_lock:
            self._event_buffer.append(event)

        for hook in self._event_hooks:
            try:
                hook(event)
            except Exception as e:
                self._logger.error("event_hook_error", error=str(e))

    def publish(self, event: RanchEvent) -> None:
        """Publish an event to all subscribed clients.

        Non-blocking and safe to call from any thread. When called off the
        server's event loop, the broadcast is handed to that loop.
        """
        self._record(event)

        loop = self._loop
        if not self._is_running or loop is None or loop.is_closed():
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            loop.create_task(self._broadcast(event))
        else:
            asyncio.run_coroutine_threadsafe(self._broadcast(event), loop)

    async def _broadcast(self, event: RanchEvent) -> None:
        if not self._clients:
            return

        message = json.dumps(event.to_dict())

        tasks = [
            self._safe_send(client, message)
            for client in list(self._clients)
            if self._should_send_to_client(client, event)
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _safe_send(self, client: ClientConnection, message: str) -> None:
        try:
            await client.websocket.send(message)
        except websockets.ConnectionClosed:
            self._clients.discard(client)
        except Exception as e:
            self._logger.error("send_error", client_id=client.client_id, error=str(e))

    async def broadcast_all(self, event: RanchEvent) -> None:
        """Broadcast an event and wait for completion."""
        self._record(event)
        await self._broadcast(event)

    def get_status(self) -> dict[str, Any]:
        """Get publisher status information."""
        return {
            "is_running": self._is_running,
            "host": self._host,
            "port": self._port,
            "client_count": len(self._clients),
            "buffer_size": len(self.recent_events),
            "clients": [
                {
                    "id": c.client_id,
                    "connected_at": c.connected_at.isoformat(),
                    "subscribed_events": len(c.subscribed_events),
                    "subscribed_managers": len(c.subscribed_managers),
                }
                for c in self._clients
            ],
        }


# Global publisher instance for convenience
_publisher: EventPublisher | None = None


def get_publisher() -> EventPublisher:
    """Get or create the global event publisher instance."""
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher()
    return _publisher
