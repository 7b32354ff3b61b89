"""CLI commands for patients and reminder calls."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(no_args_is_help=True)
console = Console()

OWNER_OPTION = typer.Option(..., "--owner", "-o", envvar="CURABOT_OWNER", help="Owner (user) id")


@app.command("list")
def list_patients(owner: str = OWNER_OPTION):
    """List an owner's patients with today's call stats."""

    async def _list():
        from curabot.patients.service import list_patients as load_patients
        from curabot.patients.service import patient_stats
        from curabot.storage.db import close_db, get_session
        from curabot.storage.scoped import OwnerScope

        try:
            async with get_session() as session:
                scope = OwnerScope(session, owner)
                patients = await load_patients(scope)
                stats = await patient_stats(scope)
        finally:
            await close_db()

        if not patients:
            console.print("[yellow]No patients found.[/yellow]")
            return

        table = Table(title="Patients")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Age", justify="right")
        table.add_column("Phone")
        table.add_column("Medications")
        table.add_column("Adherence", justify="right")
        for p in patients:
            meds = ", ".join(f"{m.name} {m.dosage}" for m in p.medications if m.active)
            table.add_row(p.id, p.name, str(p.age), p.phone, meds, f"{p.adherence_rate:.0f}%")
        console.print(table)
        console.print(
            f"Calls today: {stats.today_calls} "
            f"([green]{stats.completed_calls} completed[/green], "
            f"[red]{stats.missed_calls} missed[/red]), "
            f"success rate {stats.success_rate}%"
        )

    asyncio.run(_list())


@app.command("seed")
def seed(owner: str = OWNER_OPTION):
    """Load demo patients for an owner with no data yet."""

    async def _seed():
        from curabot.patients.seed import seed_demo_data
        from curabot.storage.db import close_db, get_session
        from curabot.storage.scoped import OwnerScope

        try:
            async with get_session() as session:
                result = await seed_demo_data(OwnerScope(session, owner))
        finally:
            await close_db()

        colour = "green" if result["seeded"] else "yellow"
        console.print(f"[{colour}]{result['message']}[/{colour}]")

    asyncio.run(_seed())


@app.command("call")
def call(
    patient_id: str = typer.Argument(help="Patient id"),
    owner: str = OWNER_OPTION,
):
    """Place a medication reminder call now."""

    async def _call():
        from curabot.errors import CurabotError
        from curabot.patients.service import get_patient
        from curabot.patients.voice import VoiceAgentClient, call_patient
        from curabot.storage.db import close_db, get_session
        from curabot.storage.scoped import OwnerScope

        client = VoiceAgentClient()
        if not client.configured:
            console.print("[red]Voice calls are not configured (set ELEVENLABS_API_KEY and phone_number_id)[/red]")
            raise typer.Exit(1)

        try:
            async with get_session() as session:
                scope = OwnerScope(session, owner)
                patient = await get_patient(scope, patient_id)
                log = await call_patient(scope, patient, client)
        except CurabotError as e:
            console.print(f"[red]{e.message}[/red]")
            raise typer.Exit(1)
        finally:
            await close_db()

        if log is None:
            console.print("[red]Reminder call could not be placed[/red]")
            raise typer.Exit(1)
        console.print(f"Calling [cyan]{patient.name}[/cyan] (conversation {log.conversation_id})")

    asyncio.run(_call())
