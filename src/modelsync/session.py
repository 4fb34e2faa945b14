"""Per-workspace collaboration session: channel, protocol, state and status polling."""

import asyncio
from typing import Optional

from .sync.config import SyncConfig
from .sync.interfaces import ModelStore, TokenProvider
from .sync.logging_config import get_logger, setup_sync_logging
from .sync.session_state import SessionState
from .websocket.channel import ConnectionChannel, Connector
from .websocket.protocol import CollaborationProtocol


class CollaborationSession:
    """Explicit context object for one workspace.

    Each session owns exactly one ConnectionChannel. ``close()`` stops the
    status poll, drops every subscription and disconnects the channel.
    """

    def __init__(self, workspace_id: str, user_id: str, token_provider: TokenProvider,
                 model_store: ModelStore, config: Optional[SyncConfig] = None,
                 connector: Optional[Connector] = None):
        self.workspace_id = workspace_id
        self.user_id = user_id
        self.config = config or SyncConfig()
        self.token_provider = token_provider
        setup_sync_logging(self.config.log_level)
        self.logger = get_logger(__name__)

        self.state = SessionState(workspace_id)
        self.channel = ConnectionChannel(self.config, connector=connector)
        self.protocol = CollaborationProtocol(self.channel, self.state, model_store, user_id,
                                              config=self.config)

        self._poll_task: Optional[asyncio.Task] = None
        self._started = False

    async def start(self) -> bool:
        """Attach the protocol, start status polling and connect.

        Returns:
            True when the connection was established on the first attempt.
            False when no token is available, in which case nothing is started.
        """
        if self._started:
            return self.channel.is_connected()

        token = self.token_provider.get_access_token()
        if not token:
            self.logger.warning(
                f"No access token available for collaboration in workspace {self.workspace_id}",
                extra={'workspace_id': self.workspace_id}
            )
            return False

        self._started = True
        self.protocol.attach()
        self._poll_task = asyncio.create_task(self._poll_status())

        endpoint = self.config.build_endpoint(self.workspace_id)
        return await self.channel.connect(endpoint, token)

    def close(self) -> None:
        """Tear the session down synchronously. Idempotent."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

        self.protocol.detach()
        self.channel.disconnect()
        self.protocol.refresh_connection_status()
        self._started = False

    async def aclose(self) -> None:
        """Close and wait for the transport to finish closing."""
        self.close()
        await self.channel.wait_closed()

    async def __aenter__(self) -> "CollaborationSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _poll_status(self) -> None:
        """Refresh the session's connection status at a fixed cadence."""
        while True:
            try:
                await asyncio.sleep(self.config.status_poll_interval_seconds)
                self.protocol.refresh_connection_status()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in status poll: {e}")
