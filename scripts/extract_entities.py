#!/usr/bin/env python3
"""Run the extraction engine over a text file.

Usage:
    python scripts/extract_entities.py extract mail.txt --sender ops@maersk.com --subject "Booking 262226938"
    python scripts/extract_entities.py document shipping_bill sb.txt
    python scripts/extract_entities.py detect-sender "Hapag-Lloyd <noreply@hlag.com>"
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

# Allow running from a checkout without installing.
sys.path.insert(0, str(Path(__file__).parent.parent))

from freight_extract.documents.document_extractor import DocumentExtractor  # noqa: E402
from freight_extract.extraction.models import ExtractionInput, SourceType  # noqa: E402
from freight_extract.extraction.sender_aware_extractor import SenderAwareExtractor  # noqa: E402
from freight_extract.extraction.sender_category import SenderCategoryDetector, load_default_detector  # noqa: E402
from freight_extract.utils.config import Config, load_config  # noqa: E402
from freight_extract.utils.logging import setup_logging  # noqa: E402

app = typer.Typer(help="Extract shipment entities from freight emails and documents.")
console = Console()


def _load(config_path: Path, verbose: bool) -> Config:
    config = load_config(config_path) if config_path.exists() else Config()
    if verbose:
        config.logging.level = "DEBUG"
    setup_logging(config.logging)
    return config


def _read(path: Path) -> str:
    if not path.exists():
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(code=1)
    return path.read_text(encoding="utf-8", errors="replace")


@app.command()
def extract(
    file: Path = typer.Argument(..., help="Text file holding the message body."),
    sender: str = typer.Option(..., "--sender", "-s", help="Sender address or display identity."),
    true_sender: Optional[str] = typer.Option(None, help="Original sender of a forwarded message."),
    subject: str = typer.Option("", help="Message subject."),
    source_type: SourceType = typer.Option(SourceType.EMAIL, help="email or document."),
    document_type: Optional[str] = typer.Option(None, help="Known document type, enables schema extraction."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON."),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Flat entity extraction for one message."""
    cfg = _load(config, verbose)
    extractor = SenderAwareExtractor(cfg)
    result = extractor.extract(
        ExtractionInput(
            raw_text=_read(file),
            subject=subject,
            sender_identity=sender,
            true_sender_identity=true_sender,
            source_type=source_type,
            known_document_type=document_type,
        )
    )

    if as_json:
        console.print_json(result.model_dump_json())
        return

    table = Table(title=f"Entities ({result.sender_category.value})")
    table.add_column("Type", style="cyan")
    table.add_column("Value")
    table.add_column("Conf", justify="right")
    table.add_column("Prio", justify="right")
    table.add_column("Flags")
    for entity in result.extractions:
        flags = "".join(
            flag for flag, on in (("R", entity.is_required), ("C", entity.is_critical), ("L", entity.is_linkable)) if on
        )
        table.add_row(
            entity.entity_type.value,
            entity.value,
            str(entity.confidence),
            str(entity.priority),
            flags,
        )
    console.print(table)

    meta = result.metadata
    console.print(
        f"Extracted [bold]{meta.total_extracted}[/bold], rejected {meta.rejected_count}, "
        f"avg confidence {meta.avg_confidence}, {meta.processing_time_ms:.1f} ms"
    )
    if meta.required_missing:
        console.print(f"[yellow]Missing required: {', '.join(meta.required_missing)}[/yellow]")
    if result.document is not None:
        console.print_json(result.document.model_dump_json())


@app.command()
def document(
    document_type: str = typer.Argument(..., help="Document type or alias, e.g. bill_of_lading, mbl."),
    file: Path = typer.Argument(..., help="Text file holding the document text."),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Schema-driven extraction for a document of known type."""
    cfg = _load(config, verbose)
    extractor = DocumentExtractor.from_config(cfg.documents)
    result = extractor.extract(document_type, _read(file))
    if result is None:
        console.print(f"[red]Unsupported document type: {document_type}[/red]")
        console.print("Supported: " + ", ".join(extractor.supported_document_types()))
        raise typer.Exit(code=1)

    fields = Table(title=f"{result.document_type} (confidence {result.confidence:.2f})")
    fields.add_column("Field", style="cyan")
    fields.add_column("Value")
    fields.add_column("Conf", justify="right")
    for name, extracted in result.fields.items():
        value = extracted.value
        fields.add_row(name, ", ".join(value) if isinstance(value, list) else str(value), f"{extracted.confidence:.1f}")
    console.print(fields)

    for role, party in result.parties.items():
        console.print(f"[bold]{role}[/bold]: {json.dumps(party.model_dump(exclude_none=True))}")

    for name, rows in result.tables.items():
        if not rows:
            continue
        table = Table(title=name)
        for column in rows[0]:
            table.add_column(column)
        for row in rows:
            table.add_row(*("" if v is None else str(v) for v in row.values()))
        console.print(table)


@app.command("detect-sender")
def detect_sender(
    address: str = typer.Argument(..., help="Sender address or display identity."),
    true_sender: Optional[str] = typer.Option(None, help="Original sender of a forwarded message."),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
) -> None:
    """Print the sender category for an address."""
    cfg = _load(config, verbose=False)
    detector = (
        SenderCategoryDetector.from_yaml(cfg.patterns.sender_categories_file)
        if cfg.patterns.sender_categories_file
        else load_default_detector()
    )
    category = detector.detect_with_fallback(address, true_sender)
    console.print(category.value)


if __name__ == "__main__":
    app()
