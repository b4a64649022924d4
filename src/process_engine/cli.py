"""
Process Engine CLI
"""
import asyncio
import logging
from pathlib import Path

import click

from .config import Settings
from .exceptions import ProcessEngineError
from .models.security import User
from .seeds import PermissionSeeder
from .services import build_database_services
from .api.middleware import create_access_token


def _configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _run(coro_factory):
    """在一组数据库组件上运行协程"""
    settings = Settings.from_env()
    _configure_logging(settings.log_level)

    async def _main():
        services = await build_database_services(settings)
        try:
            return await coro_factory(services, settings)
        finally:
            await services.close()

    try:
        return asyncio.run(_main())
    except ProcessEngineError as e:
        raise click.ClickException(f"{e.kind}: {e}")
    except ValueError as e:
        raise click.ClickException(str(e))


@click.group()
def cli():
    """Process Engine CLI"""
    pass


@cli.command()
@click.option('--host', default=None, help='Host to bind to')
@click.option('--port', default=None, type=int, help='Port to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
def serve(host, port, reload):
    """Start the API server"""
    import uvicorn

    settings = Settings.from_env()
    _configure_logging(settings.log_level)
    host = host or settings.api_host
    port = port or settings.api_port

    click.echo(f"Starting API server on {host}:{port}")
    uvicorn.run(
        "process_engine.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload or settings.api_reload,
        workers=None if reload else settings.api_workers
    )


@cli.command('init-db')
def init_db():
    """Create database tables"""
    async def _init(services, settings):
        await services.db_manager.create_tables()

    _run(_init)
    click.echo("Database initialized")


@cli.command()
@click.option('--user-id', default=None, help='User to add to the "All Permissions" group')
@click.option('--create-admin', is_flag=True, help='Create an administrator user first')
@click.option('--token', 'print_token', is_flag=True, help='Print an API token for the user')
def seed(user_id, create_admin, print_token):
    """Seed permissions and the "All Permissions" group"""
    async def _seed(services, settings):
        target = user_id
        if create_admin:
            target = await services.permissions.save_user(
                User(id=user_id or "1", username="admin", is_administrator=True)
            )
        group = await PermissionSeeder(services.permissions).run(target)
        members = await services.permissions.group_members(group.id)
        return group, sorted(members), settings

    group, members, settings = _run(_seed)
    click.echo(f"Seeded group '{group.name}' with members: {', '.join(members)}")
    if print_token:
        for member in members:
            click.echo(f"{member}: {create_access_token(member, settings.jwt_secret_key, settings.jwt_algorithm)}")


@cli.command()
@click.argument('definition_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--id', 'definition_id', default=None, help='Process id (overrides the document)')
@click.option('--name', default=None, help='Process name')
def deploy(definition_file, definition_id, name):
    """Deploy a process definition file as a new version"""
    async def _deploy(services, settings):
        return await services.definitions.deploy(definition_file, definition_id=definition_id, name=name)

    definition = _run(_deploy)
    click.echo(f"Deployed process '{definition.id}' version {definition.version}")


@cli.command()
@click.argument('definition_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(definition_file):
    """Validate a process definition file"""
    from .core.definitions import DefinitionStore
    from .storage.repository import InMemoryDefinitionRepository

    errors = DefinitionStore(InMemoryDefinitionRepository()).validate(definition_file)
    if errors:
        for error in errors:
            click.echo(f"- {error}", err=True)
        raise click.ClickException(f"{definition_file} is not a valid process definition")
    click.echo(f"{definition_file} is valid")


@cli.command()
def sweep():
    """Fire every due timer once"""
    async def _sweep(services, settings):
        return await services.scheduler.run_once()

    fired = _run(_sweep)
    click.echo(f"Fired {fired} timers")


def main():
    """Main entry point"""
    cli()


if __name__ == '__main__':
    main()
