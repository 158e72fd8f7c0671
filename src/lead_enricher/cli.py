"""Command-line interface for the lead enricher."""

import asyncio
from pathlib import Path

import typer
import polars as pl
from rich.console import Console
from rich.table import Table

from .config import settings
from .errors import CheckpointError
from .logging_config import setup_logging, get_logger
from .models import LeadRecord
from .pipeline.enricher import checkpoint_path_for, enrich_dataframe
from .cache import cache_stats, clear_cache

# Initialize CLI app
app = typer.Typer(
    name="lead-enricher",
    help="Async pipeline to enrich leads with phone, carrier, do-not-call and age data",
    add_completion=False,
)
console = Console()
logger = get_logger(__name__)


@app.callback()
def main(
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Set logging level",
        case_sensitive=False,
    ),
    cache_dir: str = typer.Option(
        settings.cache_dir,
        "--cache-dir",
        help="Directory for disk cache",
    ),
) -> None:
    """Lead Enricher CLI - Enrich contact leads from rate-limited data providers."""
    # Update settings
    settings.log_level = log_level.upper()
    settings.cache_dir = cache_dir

    setup_logging(log_level)


def _load_input(input_path: Path) -> pl.DataFrame:
    if not input_path.exists():
        console.print(f"[red]Error: File '{input_path}' not found")
        raise typer.Exit(1)

    if input_path.suffix.lower() == ".xlsx":
        return pl.read_excel(str(input_path))
    if input_path.suffix.lower() == ".csv":
        return pl.read_csv(str(input_path), infer_schema_length=0)

    console.print(f"[red]Error: Unsupported file format '{input_path.suffix}'")
    console.print("Supported formats: .csv, .xlsx")
    raise typer.Exit(1)


def _mask(value: str, optional: bool = False) -> str:
    if value:
        return "***" + value[-4:]
    return "[yellow]Not set (optional)" if optional else "[red]Not set"


@app.command()
def enrich(
    input_file: str = typer.Argument(..., help="Input CSV or XLSX file with lead data"),
    output: str = typer.Option(
        "enriched.csv",
        "--out", "-o",
        help="Output file path for enriched data (.csv or .parquet)",
    ),
    flush_every: int = typer.Option(
        settings.flush_every,
        "--flush-every",
        help="Save checkpoint every N leads",
        min=1,
    ),
    resume: bool = typer.Option(
        False,
        "--resume",
        help="Resume from the checkpoint of a previous run",
    ),
    yes: bool = typer.Option(
        False,
        "--yes", "-y",
        help="Do not ask for confirmation",
    ),
) -> None:
    """
    Enrich leads from a CSV or XLSX file.

    The input needs a name column (Name, or First Name and Last Name) or an
    Email column; City, State, Zip and Phone are used when present.
    """
    # Validate required settings
    missing = settings.missing_credentials()
    if missing:
        console.print(f"[red]Error: Missing required settings: {', '.join(missing)}")
        console.print("Set them in the environment or in a .env file")
        raise typer.Exit(1)

    input_path = Path(input_file)
    try:
        df = _load_input(input_path)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Error loading input file: {e}")
        raise typer.Exit(1)

    leads = [LeadRecord.from_row(row) for row in df.head(50).to_dicts()]
    if not any(lead.name or lead.first_name or lead.last_name or lead.email for lead in leads):
        console.print("[red]Error: No name or email column found")
        raise typer.Exit(1)

    checkpoint = checkpoint_path_for(output)
    if resume and not checkpoint.exists():
        console.print(f"[yellow]No checkpoint at {checkpoint}, starting from the beginning")

    # Display input summary
    table = Table(title="Input Data Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Total leads", str(len(df)))
    table.add_row("Input file", str(input_path))
    table.add_row("Output file", output)
    table.add_row("Checkpoint file", str(checkpoint))
    table.add_row("Checkpoint interval", str(flush_every))
    table.add_row("Resume", "yes" if resume else "no")

    console.print(table)

    # Confirm before proceeding
    if not yes and not typer.confirm("\nProceed with enrichment?"):
        console.print("Cancelled.")
        raise typer.Exit(0)

    # Run enrichment
    try:
        final_df = asyncio.run(
            enrich_dataframe(df, output, flush_every=flush_every, resume=resume)
        )

        # Display summary
        if len(final_df) < len(df):
            console.print("\n[yellow]⚠️  Enrichment interrupted by user")
            console.print(f"[yellow]📄 Partial results saved to: {output}")
            console.print(f"[yellow]📊 Leads processed: {len(final_df)}/{len(df)}")
            console.print("[yellow]Run again with --resume to continue")
        else:
            console.print("\n[green]✅ Enrichment completed successfully!")
            console.print(f"[green]📄 Results saved to: {output}")
            console.print(f"[green]📊 Total leads processed: {len(final_df)}")

    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️  Enrichment interrupted by user")
        console.print(f"[yellow]📄 Partial results saved in: {checkpoint}")
        console.print("[yellow]Run again with --resume to continue")
    except CheckpointError as e:
        console.print(f"\n[red]❌ Could not save progress: {e}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"\n[red]❌ Enrichment failed: {e}")
        logger.exception("Enrichment failed")
        raise typer.Exit(1)


@app.command()
def info(
    input_file: str = typer.Argument(..., help="Input file to analyze"),
) -> None:
    """Display information about input file."""
    input_path = Path(input_file)

    try:
        df = _load_input(input_path)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Error analyzing file: {e}")
        raise typer.Exit(1)

    # Display file info
    table = Table(title=f"File Analysis: {input_path.name}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("File size", f"{input_path.stat().st_size / 1024:.1f} KB")
    table.add_row("Rows", str(len(df)))
    table.add_row("Columns", str(len(df.columns)))

    console.print(table)

    # Display column info
    columns_table = Table(title="Columns")
    columns_table.add_column("Name", style="cyan")
    columns_table.add_column("Type", style="yellow")
    columns_table.add_column("Non-null", style="green")

    for col in df.columns:
        dtype = str(df[col].dtype)
        non_null_count = df[col].drop_nulls().len()
        columns_table.add_row(col, dtype, f"{non_null_count}/{len(df)}")

    console.print(columns_table)

    # Show which lead fields the columns map onto
    leads = [LeadRecord.from_row(row) for row in df.to_dicts()]
    mapping_table = Table(title="Detected Lead Fields")
    mapping_table.add_column("Field", style="cyan")
    mapping_table.add_column("Filled", style="green")
    for name in ("name", "first_name", "last_name", "city", "state", "postal_code", "phone", "email"):
        filled = sum(1 for lead in leads if getattr(lead, name))
        mapping_table.add_row(name, f"{filled}/{len(leads)}")
    console.print(mapping_table)

    if not any(lead.name or lead.first_name or lead.last_name or lead.email for lead in leads):
        console.print("\n[red]⚠️  No name or email column found")
    else:
        console.print("\n[green]✅ Leads can be searched by name or email")

    # Show sample data
    if len(df) > 0:
        console.print("\n[cyan]Sample data (first 3 rows):")
        console.print(df.head(3))


@app.command()
def cache(
    action: str = typer.Argument(..., help="Cache action: 'stats', 'clear'"),
) -> None:
    """Manage the application cache (persisted tokens)."""
    if action == "stats":
        stats = cache_stats()

        table = Table(title="Cache Statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Cache entries", str(stats["size"]))
        table.add_row("Cache volume", f"{stats['volume'] / 1024 / 1024:.1f} MB")
        table.add_row("Cache directory", settings.cache_dir)

        console.print(table)

    elif action == "clear":
        if typer.confirm("Are you sure you want to clear the cache?"):
            clear_cache()
            console.print("[green]✅ Cache cleared successfully")
        else:
            console.print("Cancelled.")
    else:
        console.print(f"[red]Error: Unknown cache action '{action}'")
        console.print("Available actions: stats, clear")
        raise typer.Exit(1)


@app.command()
def config() -> None:
    """Display current configuration."""
    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Source", style="yellow")

    # Show key settings (mask sensitive values)
    table.add_row("RapidAPI Key", _mask(settings.rapidapi_key), "Environment")
    table.add_row("Telnyx API Key", _mask(settings.telnyx_api_key), "Environment")
    table.add_row("Cognito Client ID", _mask(settings.cognito_client_id), "Environment")
    table.add_row("Cognito Refresh Token", _mask(settings.cognito_refresh_token), "Environment")
    table.add_row("DNC Agent Number", _mask(settings.dnc_agent_number, optional=True), "Environment")

    table.add_row("Skip Tracing Host", settings.skip_tracing_host, "Config")
    for provider, delay in settings.provider_delays.items():
        table.add_row(f"Min Delay ({provider})", f"{delay:.2f}s", "Config")
    table.add_row("Token Safety Margin", f"{settings.token_safety_margin:.0f}s", "Config")
    table.add_row("Checkpoint Interval", str(settings.flush_every), "Config")
    table.add_row("Cache Directory", settings.cache_dir, "Config")
    table.add_row("HTTP Timeout", f"{settings.http_timeout}s", "Config")
    table.add_row("Log Level", settings.log_level, "Config")

    console.print(table)


if __name__ == "__main__":
    app()
