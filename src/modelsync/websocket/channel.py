"""Collaboration connection with a state machine and automatic reconnection."""

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union
from urllib.parse import quote

from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..sync.config import SyncConfig
from ..sync.exceptions import TransportError
from ..sync.logging_config import get_logger, log_connection_event
from ..sync.models import ConnectionState, Envelope, RetryAttemptContext
from ..sync.retry import RetryExecutor, RetryPolicy


Connector = Callable[[str], Awaitable[Any]]
Unsubscribe = Callable[[], None]


class ConnectionChannel:
    """Owns one physical connection to a workspace.

    States move ``disconnected -> connecting -> connected <-> reconnecting``.
    An unexpected closure starts a bounded reconnection through the
    RetryExecutor; only an explicit ``disconnect()`` is terminal.
    """

    def __init__(self, config: SyncConfig, connector: Optional[Connector] = None,
                 retry_executor: Optional[RetryExecutor] = None):
        """Initialize the channel.

        Args:
            config: Sync configuration (reconnection policy, timeouts)
            connector: Coroutine function opening a transport for a URL;
                defaults to ``websockets`` client connections
            retry_executor: Executor driving reconnection
        """
        self.config = config
        self.logger = get_logger(__name__)

        self._connector = connector or self._default_connector
        self._retry_executor = retry_executor or RetryExecutor()
        self._retry_policy = RetryPolicy.from_config(config)

        # Connection state
        self._state = ConnectionState.DISCONNECTED
        self._endpoint: Optional[str] = None
        self._credentials: Optional[str] = None
        self._transport: Optional[Any] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._pending_closes: Set[asyncio.Task] = set()
        self._closing = False
        self._connected_at: Optional[float] = None

        # Subscriptions
        self._message_handlers: Dict[int, Callable] = {}
        self._close_handlers: Dict[int, Callable] = {}
        self._error_handlers: Dict[int, Callable] = {}
        self._state_handlers: Dict[int, Callable] = {}
        self._next_handler_id = 0

        # Metrics
        self._messages_sent = 0
        self._messages_received = 0
        self._messages_dropped = 0
        self._decode_failures = 0
        self._retry_attempts = 0
        self._successful_reconnections = 0
        self._failed_reconnections = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def endpoint(self) -> Optional[str]:
        return self._endpoint

    def is_connected(self) -> bool:
        """Point-in-time read of the connection state."""
        return self._state == ConnectionState.CONNECTED

    # Subscriptions

    def on_message(self, handler: Callable[[Dict[str, Any]], None]) -> Unsubscribe:
        """Register a handler for decoded inbound messages."""
        return self._subscribe(self._message_handlers, handler)

    def on_close(self, handler: Callable[[], None]) -> Unsubscribe:
        """Register a handler for unexpected transport closure."""
        return self._subscribe(self._close_handlers, handler)

    def on_error(self, handler: Callable[[BaseException], None]) -> Unsubscribe:
        """Register a handler for errors, including reconnection exhaustion."""
        return self._subscribe(self._error_handlers, handler)

    def on_state_change(self, handler: Callable[[ConnectionState], None]) -> Unsubscribe:
        """Register a handler called after every state transition."""
        return self._subscribe(self._state_handlers, handler)

    def _subscribe(self, registry: Dict[int, Callable], handler: Callable) -> Unsubscribe:
        handler_id = self._next_handler_id
        self._next_handler_id += 1
        registry[handler_id] = handler

        def unsubscribe() -> None:
            registry.pop(handler_id, None)

        return unsubscribe

    def _emit(self, registry: Dict[int, Callable], *args: Any) -> None:
        for handler_id, handler in list(registry.items()):
            # Skip handlers removed by an earlier handler in this dispatch
            if registry.get(handler_id) is not handler:
                continue
            try:
                handler(*args)
            except Exception as e:
                self.logger.error(f"Error in channel handler {getattr(handler, '__name__', handler)}: {e}")

    # Lifecycle

    async def connect(self, endpoint: str, credentials: Optional[str]) -> bool:
        """Open the transport to ``endpoint`` authenticated by ``credentials``.

        Returns:
            True when connected. False when the credential is missing (nothing is
            attempted) or the first attempt failed (reconnection continues in the
            background).
        """
        if not credentials:
            self._log_connection(
                "credential_missing",
                f"No access token available; skipping connection to {endpoint}"
            )
            return False

        if self._state != ConnectionState.DISCONNECTED:
            self.logger.debug(f"Connect ignored, channel is {self._state.value}")
            return self._state == ConnectionState.CONNECTED

        self._endpoint = endpoint
        self._credentials = credentials
        self._closing = False
        self._set_state(ConnectionState.CONNECTING)

        try:
            transport = await self._open_transport()
        except Exception as e:
            if self._closing:
                return False
            self.logger.warning(f"Initial connection to {endpoint} failed: {e}")
            self._start_reconnection()
            return False

        if self._closing:
            self._close_transport(transport)
            return False

        self._attach(transport)
        return True

    def disconnect(self) -> None:
        """Close the channel for good.

        Cancels any reconnection in flight, closes the transport and drops every
        subscription. Safe to call repeatedly and from inside a handler.
        """
        was_active = self._state != ConnectionState.DISCONNECTED or self._transport is not None
        self._closing = True

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        for task in (self._reconnect_task, self._reader_task):
            if task is not None and not task.done() and task is not current:
                task.cancel()
        self._reconnect_task = None
        self._reader_task = None

        if self._transport is not None:
            self._close_transport(self._transport)
            self._transport = None

        self._set_state(ConnectionState.DISCONNECTED)

        self._message_handlers.clear()
        self._close_handlers.clear()
        self._error_handlers.clear()
        self._state_handlers.clear()

        if was_active:
            self._log_connection(
                "disconnected", f"Disconnected from {self._endpoint}",
                connection_duration_ms=self._connection_duration_ms()
            )

    async def wait_closed(self) -> None:
        """Wait for transport close calls scheduled by ``disconnect()``."""
        if self._pending_closes:
            await asyncio.gather(*list(self._pending_closes), return_exceptions=True)

    # Sending

    async def send(self, envelope: Union[Envelope, Dict[str, Any]]) -> bool:
        """Transmit an envelope when connected; otherwise drop it.

        Never raises for transport problems; the read loop notices a lost
        connection and drives reconnection.
        """
        transport = self._transport
        if self._state != ConnectionState.CONNECTED or transport is None:
            self._messages_dropped += 1
            self._log_connection(
                "send_dropped",
                f"Channel is {self._state.value}; message not sent"
            )
            return False

        if isinstance(envelope, Envelope):
            data = envelope.to_wire()
        else:
            data = json.dumps(envelope, separators=(',', ':'), default=str)

        try:
            await transport.send(data)
        except (ConnectionClosed, WebSocketException, OSError) as e:
            self._messages_dropped += 1
            self.logger.warning(f"Failed to send message: {e}")
            return False

        self._messages_sent += 1
        return True

    # Internals

    async def _default_connector(self, url: str) -> Any:
        return await websocket_connect(url, open_timeout=self.config.open_timeout_seconds)

    async def _open_transport(self) -> Any:
        separator = "&" if "?" in self._endpoint else "?"
        url = f"{self._endpoint}{separator}token={quote(self._credentials, safe='')}"
        try:
            return await self._connector(url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise TransportError(self._endpoint, str(e) or type(e).__name__) from e

    def _attach(self, transport: Any) -> None:
        self._transport = transport
        self._connected_at = time.time()
        self._set_state(ConnectionState.CONNECTED)
        self._log_connection("connected", f"Connected to {self._endpoint}")
        self._reader_task = asyncio.create_task(self._read_loop(transport))

    async def _read_loop(self, transport: Any) -> None:
        """Dispatch inbound messages in transport order until the connection ends."""
        error: Optional[BaseException] = None
        try:
            async for raw in transport:
                self._dispatch_raw(raw)
                if self._closing or transport is not self._transport:
                    return
        except ConnectionClosed as e:
            error = e
        except Exception as e:
            self.logger.error(f"Error in read loop: {e}")
            error = e

        if self._closing or transport is not self._transport:
            return

        self._handle_unexpected_close(error)

    def _dispatch_raw(self, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as e:
            self._decode_failures += 1
            self.logger.warning(f"Dropping message that is not valid JSON: {e}")
            return

        if not isinstance(message, dict):
            self._decode_failures += 1
            self.logger.warning(f"Dropping message that is not a JSON object: {type(message).__name__}")
            return

        self._messages_received += 1
        self._emit(self._message_handlers, message)

    def _handle_unexpected_close(self, error: Optional[BaseException]) -> None:
        self._transport = None
        self._reader_task = None
        reason = str(error) if error else "closed by peer"
        self._log_connection(
            "reconnecting", f"Connection lost ({reason})",
            connection_duration_ms=self._connection_duration_ms()
        )

        self._emit(self._close_handlers)
        if self._closing:
            return

        self._start_reconnection()

    def _start_reconnection(self) -> None:
        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        try:
            transport = await self._retry_executor.execute(
                self._open_transport, self._retry_policy, on_retry=self._on_retry
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._reconnect_task = None
            if self._closing:
                return
            self._failed_reconnections += 1
            self._log_connection(
                "exhausted",
                f"Reconnection failed after {self._retry_policy.max_attempts + 1} attempts: {e}"
            )
            self._set_state(ConnectionState.DISCONNECTED)
            self._emit(self._error_handlers, e)
            return

        self._reconnect_task = None
        if self._closing:
            self._close_transport(transport)
            return

        self._successful_reconnections += 1
        self._attach(transport)

    def _on_retry(self, context: RetryAttemptContext) -> None:
        self._retry_attempts += 1
        self._log_connection(
            "retry",
            f"Reconnection attempt {context.attempt_number} failed: {context.error}; "
            f"retrying in {context.computed_delay:.0f}ms"
        )

    def _log_connection(self, event: str, message: str, **kwargs) -> None:
        if self.config.log_connection_events:
            log_connection_event(self.logger, None, event, message, **kwargs)

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        old_state = self._state
        self._state = new_state
        self.logger.debug(f"Channel state {old_state.value} -> {new_state.value}")
        self._emit(self._state_handlers, new_state)

    def _close_transport(self, transport: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._safe_close(transport))
        self._pending_closes.add(task)
        task.add_done_callback(self._pending_closes.discard)

    async def _safe_close(self, transport: Any) -> None:
        try:
            await transport.close()
        except Exception as e:
            self.logger.debug(f"Error closing transport: {e}")

    def _connection_duration_ms(self) -> Optional[float]:
        if self._connected_at is None:
            return None
        return (time.time() - self._connected_at) * 1000

    def get_metrics(self) -> Dict[str, Any]:
        """Get channel metrics."""
        return {
            "state": self._state.value,
            "messages_sent": self._messages_sent,
            "messages_received": self._messages_received,
            "messages_dropped": self._messages_dropped,
            "decode_failures": self._decode_failures,
            "retry_attempts": self._retry_attempts,
            "successful_reconnections": self._successful_reconnections,
            "failed_reconnections": self._failed_reconnections,
        }
