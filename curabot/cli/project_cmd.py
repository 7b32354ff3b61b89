"""CLI commands for automation projects."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(no_args_is_help=True)
console = Console()

OWNER_OPTION = typer.Option(..., "--owner", "-o", envvar="CURABOT_OWNER", help="Owner (user) id")


@app.command("list")
def list_projects(owner: str = OWNER_OPTION):
    """List an owner's projects, newest first."""

    async def _list():
        from curabot.projects.snapshot import list_project_snapshots
        from curabot.storage.db import close_db, get_session
        from curabot.storage.scoped import OwnerScope

        try:
            async with get_session() as session:
                projects = await list_project_snapshots(OwnerScope(session, owner))
        finally:
            await close_db()

        if not projects:
            console.print("[yellow]No projects found.[/yellow]")
            return

        table = Table(title="Projects")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("URL")
        table.add_column("Status")
        table.add_column("Latest analysis")
        for p in projects:
            table.add_row(p["id"], p["name"], p["url"], p["status"], p.get("latestAnalysisStatus") or "")
        console.print(table)

    asyncio.run(_list())


@app.command("create")
def create(
    name: str = typer.Argument(help="Project name"),
    url: str = typer.Argument(help="Site to automate"),
    objective: str = typer.Argument(help="What the automation should accomplish"),
    owner: str = OWNER_OPTION,
):
    """Create a pending project."""

    async def _create():
        from curabot.errors import CurabotError
        from curabot.projects.service import create_project
        from curabot.storage.db import close_db, get_session
        from curabot.storage.scoped import OwnerScope

        try:
            async with get_session() as session:
                project = await create_project(OwnerScope(session, owner), name, url, objective)
        except CurabotError as e:
            console.print(f"[red]{e.message}[/red]")
            raise typer.Exit(1)
        finally:
            await close_db()
        console.print(f"Project [cyan]{project['name']}[/cyan] created: {project['id']}")

    asyncio.run(_create())


@app.command("run")
def run(
    project_id: str = typer.Argument(help="Project id"),
    owner: str = OWNER_OPTION,
):
    """Hand a project to the automation service."""

    async def _run():
        from curabot.errors import CurabotError
        from curabot.projects.service import trigger_automation
        from curabot.storage.db import close_db, get_session
        from curabot.storage.scoped import OwnerScope

        try:
            async with get_session() as session:
                project = await OwnerScope(session, owner).projects.require(project_id)
                await trigger_automation(session, project)
                status = project.status
        except CurabotError as e:
            console.print(f"[red]{e.message}[/red]")
            raise typer.Exit(1)
        finally:
            await close_db()

        colour = "red" if status == "failed" else "green"
        console.print(f"Project {project_id}: [{colour}]{status}[/{colour}]")

    asyncio.run(_run())


@app.command("watch")
def watch(
    project_id: str = typer.Argument(help="Project id"),
    owner: str = OWNER_OPTION,
):
    """Follow a running project live until it completes."""

    async def _watch():
        from rich.live import Live

        from curabot.automation.dispatcher import LocalBackend, ProjectEventDriver
        from curabot.automation.view import diagnostic_watchdog, render
        from curabot.storage.db import close_db

        driver = ProjectEventDriver(project_id, LocalBackend(owner))
        watchdog = asyncio.create_task(diagnostic_watchdog(lambda: driver.state))
        try:
            with Live(render(driver.state), console=console, refresh_per_second=4) as live:
                async for state in driver.states():
                    live.update(render(state))
        finally:
            watchdog.cancel()
            await close_db()

        if driver.state.error:
            console.print(f"[red]{driver.state.error}[/red]")

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("[dim]Stopped watching.[/dim]")
