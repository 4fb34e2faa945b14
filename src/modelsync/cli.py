import asyncio
import logging
from typing import Optional

import click
from dotenv import load_dotenv

from .session import CollaborationSession
from .sync.config import SyncConfig
from .sync.credentials import StaticTokenProvider
from .sync.exceptions import MissingCredentialError
from .sync.logging_config import setup_sync_logging
from .sync.model_store import InMemoryModelStore

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


async def watch_workspace(session: CollaborationSession, duration: Optional[float] = None) -> None:
    """Log inbound collaboration events until the duration elapses or the channel gives up."""
    stopped = asyncio.Event()

    session.protocol.on_table_update(
        lambda e: logger.info(f"Table {e.table_id} updated by {e.user_id}: {sorted(e.data)}")
    )
    session.protocol.on_relationship_update(
        lambda e: logger.info(f"Relationship {e.relationship_id} updated by {e.user_id}: {sorted(e.data)}")
    )
    session.protocol.on_presence_update(
        lambda e: logger.info(f"Presence from {e.user_id}: {len(e.selected_element_ids)} selected")
    )
    session.protocol.on_conflict(
        lambda e: logger.warning(f"Conflict on {e.element_type} {e.element_id}: {e.message}")
    )

    def on_error(error: BaseException) -> None:
        logger.error(f"Collaboration channel gave up: {error}")
        stopped.set()

    session.channel.on_error(on_error)

    try:
        await session.start()
        if duration is None:
            await stopped.wait()
        else:
            try:
                await asyncio.wait_for(stopped.wait(), timeout=duration)
            except asyncio.TimeoutError:
                pass
    finally:
        await session.aclose()
        logger.info(f"Session closed: {session.state.snapshot()['connection_status']}")


@click.command()
@click.argument('workspace_id')
@click.option('--user-id', envvar='MODELSYNC_USER_ID', required=True, help='ID of the local user')
@click.option('--access-token', envvar='MODELSYNC_ACCESS_TOKEN', default=None, help='Bearer token for the workspace')
@click.option('--env-file', type=click.Path(exists=True, dir_okay=False), default=None, help='.env file with MODELSYNC_* settings')
@click.option('--duration', type=float, default=None, help='Stop after this many seconds')
@click.option('--log-level', envvar='MODELSYNC_LOG_LEVEL', default='INFO', show_default=True, help='Logging level')
def main(workspace_id, user_id, access_token, env_file, duration, log_level):
    """
    Join a workspace's collaboration channel and log the events it receives.
    """
    try:
        config = SyncConfig.from_file(env_file) if env_file else SyncConfig.from_env()
    except ValueError as e:
        raise click.ClickException(str(e))

    config.log_level = log_level.upper()
    try:
        config.validate()
    except ValueError as e:
        raise click.ClickException(str(e))
    setup_sync_logging(config.log_level)

    if not access_token:
        raise click.ClickException(MissingCredentialError(workspace_id).message)

    session = CollaborationSession(
        workspace_id=workspace_id,
        user_id=user_id,
        token_provider=StaticTokenProvider(access_token),
        model_store=InMemoryModelStore(),
        config=config,
    )

    try:
        asyncio.run(watch_workspace(session, duration))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == '__main__':
    main()
