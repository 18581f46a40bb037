import click


@click.group()
def main() -> None:
    """listsync - Multi-device list sync server and agent."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from LISTSYNC_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from LISTSYNC_PORT or 3000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the sync server."""
    import uvicorn

    from listsync.server.settings import SyncSettings

    settings = SyncSettings()

    uvicorn.run(
        "listsync.server.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
    )


@main.command()
@click.option("--server-url", default=None, help="Sync server URL (default: from LISTSYNC_AGENT_SERVER_URL).")
@click.option("--replica", "replica_path", default=None, help="Replica file (default: from LISTSYNC_AGENT_REPLICA_PATH).")
@click.option("--join", "join_code", default=None, help="Join the workspace with this share code.")
@click.option("--create", is_flag=True, default=False, help="Create a new workspace and join it.")
def agent(server_url: str | None, replica_path: str | None, join_code: str | None, create: bool) -> None:
    """Run a sync agent that keeps a local replica in sync."""
    import asyncio

    from listsync.agent.settings import AgentSettings
    from listsync.server.log import setup_logging
    from listsync.server.settings import get_settings

    if join_code and create:
        raise click.UsageError("--join and --create are mutually exclusive.")

    setup_logging(get_settings().log_level)
    overrides = {k: v for k, v in {"server_url": server_url, "replica_path": replica_path}.items() if v}
    settings = AgentSettings(**overrides)

    asyncio.run(_run_agent(settings, join_code=join_code, create=create))


async def _run_agent(settings, *, join_code: str | None, create: bool) -> None:
    import asyncio

    from listsync.agent import LocalReplica, SyncAgent
    from listsync.errors import WorkspaceNotFoundError

    replica = await LocalReplica.open(settings.replica_path)
    sync_agent = SyncAgent.from_settings(settings, replica)
    try:
        if create:
            link = await sync_agent.create_workspace()
            click.echo(f"Created workspace, share code: {link.code}")
        elif join_code:
            try:
                link = await sync_agent.join_workspace(join_code)
            except WorkspaceNotFoundError:
                raise click.ClickException(f"No workspace with code {join_code!r}.") from None
            click.echo(f"Joined workspace {link.code}")
        elif replica.workspace is None:
            raise click.UsageError("No workspace joined yet; pass --join CODE or --create.")
        else:
            sync_agent.start()
            await sync_agent.sync()

        await asyncio.Event().wait()
    finally:
        await sync_agent.close()


@main.command()
def reindex() -> None:
    """Rebuild the share-code index from the stored workspaces."""
    import asyncio

    from listsync.server.app import create_record_store
    from listsync.server.log import setup_logging
    from listsync.server.managers.workspaces import WorkspaceDirectory
    from listsync.server.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level)

    directory = WorkspaceDirectory(create_record_store(settings))
    count = asyncio.run(directory.rebuild_code_index())
    click.echo(f"Indexed {count} workspaces.")


if __name__ == "__main__":
    main()
