"""CuraBot CLI: main entry point using Typer."""

import asyncio
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from curabot.cli.patient_cmd import app as patient_app
from curabot.cli.project_cmd import app as project_app

app = typer.Typer(
    name="curabot",
    help="Medication reminder calls and visual automation projects.",
    no_args_is_help=True,
)
console = Console()

app.add_typer(project_app, name="project", help="Manage automation projects")
app.add_typer(patient_app, name="patient", help="Manage patients and reminder calls")


def _setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False)],
    )


@app.command()
def init(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Initialize CuraBot: write a default config and create the schema."""
    _setup_logging(verbose)

    async def _init():
        from pathlib import Path

        from curabot.config import get_settings
        from curabot.storage.db import close_db, init_db

        settings = get_settings()

        console.print("[bold]Welcome to CuraBot[/bold]", style="green")

        config_dir = Path.home() / ".config/curabot"
        config_dir.mkdir(parents=True, exist_ok=True)
        console.print(f"  Config dir: {config_dir}")

        screenshots = Path(settings.general.screenshots_dir).expanduser()
        screenshots.mkdir(parents=True, exist_ok=True)
        console.print(f"  Screenshots: {screenshots}")

        console.print("  Initializing database...")
        await init_db()
        await close_db()
        console.print("  Database ready.")

        config_path = config_dir / "config.toml"
        if not config_path.exists():
            config_path.write_text(
                "[general]\n"
                'db_url = "postgresql+asyncpg://localhost/curabot"\n'
                'log_level = "INFO"\n\n'
                "[auth]\n"
                '# jwt_key = ""  # Or set AUTH_JWT_KEY env var\n'
                'jwt_algorithms = ["RS256"]\n\n'
                "[automation]\n"
                'api_url = "http://localhost:8000"\n'
                '# api_key = ""  # Or set AUTOMATION_API_KEY env var\n\n'
                "[voice]\n"
                '# api_key = ""  # Or set ELEVENLABS_API_KEY env var\n'
                '# phone_number_id = ""\n\n'
                "[stripe]\n"
                '# secret_key = ""  # Or set STRIPE_SECRET_KEY env var\n'
            )
            console.print(f"  Config written: {config_path}")

        console.print("\n[bold green]CuraBot initialized![/bold green]")
        console.print("\nNext steps:")
        console.print("  1. Start the API:        [cyan]curabot serve[/cyan]")
        console.print("  2. Seed demo patients:   [cyan]curabot patient seed --owner <user id>[/cyan]")

    asyncio.run(_init())


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8080, "--port", "-p", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Run the HTTP API."""
    _setup_logging(verbose)
    import uvicorn

    console.print(f"Serving CuraBot API on [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run(
        "curabot.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="debug" if verbose else "info",
    )


@app.command()
def status(
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Show row counts per table."""
    _setup_logging(verbose)

    async def _status():
        from rich.table import Table
        from sqlalchemy import func, select

        from curabot.storage.db import close_db, get_session
        from curabot.storage.models import (
            Analysis,
            BillingAccount,
            CallLog,
            MedicalRecord,
            Patient,
            Project,
            Step,
        )

        try:
            async with get_session() as session:
                counts = {}
                for model, name in [
                    (Project, "projects"),
                    (Analysis, "analyses"),
                    (Step, "steps"),
                    (Patient, "patients"),
                    (CallLog, "call logs"),
                    (MedicalRecord, "medical records"),
                    (BillingAccount, "billing accounts"),
                ]:
                    result = await session.execute(select(func.count()).select_from(model))
                    counts[name] = result.scalar()

                result = await session.execute(
                    select(Project.status, func.count()).group_by(Project.status)
                )
                by_status = {row[0]: row[1] for row in result.all()}
        finally:
            await close_db()

        console.print("\n[bold]CuraBot Status[/bold]\n")

        table = Table(title="Data Counts")
        table.add_column("Entity", style="cyan")
        table.add_column("Count", justify="right")
        for name, count in counts.items():
            table.add_row(name, str(count))
        console.print(table)

        if by_status:
            table = Table(title="Projects by Status")
            table.add_column("Status", style="cyan")
            table.add_column("Count", justify="right")
            for name, count in sorted(by_status.items()):
                table.add_row(name, str(count))
            console.print(table)

    asyncio.run(_status())


if __name__ == "__main__":
    app()
