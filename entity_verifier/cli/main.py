"""CLI entry point for the entity verifier.

Usage:
    entity-verifier verify --first Jane --last Doe --company "Acme Corp" --title "CFO"
    entity-verifier domain "Bain Capital" --first John --last Smith
    entity-verifier offices https://www.example.com/contact
    entity-verifier seniority "VP Engineering" "Director of IT" "Analyst"
    entity-verifier ingest rows.json --kind candidate
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import uuid

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from entity_verifier.clients.fetcher import PageFetcher
from entity_verifier.clients.openai_client import LLMClient
from entity_verifier.clients.serpapi import SerpAPIClient
from entity_verifier.config import settings
from entity_verifier.extract.locations import run_location_cascade
from entity_verifier.jobs.queue import CandidatePipeline, CompanyPipeline, IngestionQueue
from entity_verifier.models import CandidateStub, VerificationStatus
from entity_verifier.resolve.domain_research import DomainResearcher, generate_email_address
from entity_verifier.resolve.duplicates import auto_deduplicate
from entity_verifier.resolve.seniority import (
    determine_seniority_level,
    filter_candidates_by_seniority,
    get_minimum_seniority_for_job,
)
from entity_verifier.results import describe
from entity_verifier.store.database import RecordStore, TaskStore
from entity_verifier.verify.orchestrator import build_default_verifier

console = Console()

STATUS_COLORS = {
    VerificationStatus.VERIFIED: "green",
    VerificationStatus.PENDING_REVIEW: "yellow",
    VerificationStatus.REJECTED: "red",
    VerificationStatus.DUPLICATE: "magenta",
}


def _setup_logging():
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Verbose logging")
def cli(verbose: bool):
    """Resolve and verify candidate and company records."""
    if verbose:
        settings.log_level = "DEBUG"
    _setup_logging()


@cli.command()
@click.option("--first", "first_name", required=True, help="First name")
@click.option("--last", "last_name", required=True, help="Last name")
@click.option("--company", "-c", default="", help="Current company")
@click.option("--title", "-t", default="", help="Current job title")
@click.option("--bio-url", default="", help="Company bio page URL")
@click.option("--domain", default="", help="Company email domain")
def verify(first_name, last_name, company, title, bio_url, domain):
    """Verify one candidate against the web and the stored population."""
    stub = CandidateStub(
        first_name=first_name,
        last_name=last_name,
        current_company=company,
        current_title=title,
        bio_url=bio_url,
        company_domain=domain,
    )
    store = RecordStore()
    verifier = build_default_verifier()

    with console.status("[bold green]Verifying candidate..."):
        result = asyncio.run(verifier.verify(stub, store.get_candidates()))

    color = STATUS_COLORS.get(result.verification_status, "white")
    console.print(
        Panel(
            f"[bold]{stub.full_name}[/bold]  {company or ''}\n"
            f"Confidence: [{color}]{result.confidence_score:.0%}[/{color}] "
            f"({result.score_points} points)  |  "
            f"Status: [{color}]{result.verification_status.value.upper()}[/{color}]",
            title="Verification",
            border_style=color,
        )
    )
    for note in result.verification_notes.split(" | "):
        console.print(f"  • {note}")
    if result.suggested_email:
        console.print(f"[bold]Suggested email:[/bold] {result.suggested_email}")


@cli.command()
@click.argument("company")
@click.option("--first", "first_name", default="", help="First name for a sample address")
@click.option("--last", "last_name", default="", help="Last name for a sample address")
def domain(company, first_name, last_name):
    """Find a company's domain and email pattern."""
    researcher = DomainResearcher(SerpAPIClient())
    with console.status(f"[bold green]Researching {company}..."):
        inference = asyncio.run(researcher.research_company(company))

    if not inference.domain:
        console.print(f"[yellow]No domain found for {company}.[/yellow]")
        sys.exit(1)

    console.print(f"[bold]Domain:[/bold]     {inference.domain} ({inference.confidence} confidence)")
    console.print(f"[bold]Pattern:[/bold]    {inference.pattern.value}")
    if first_name and last_name:
        email = generate_email_address(first_name, last_name, inference.domain, inference.pattern)
        console.print(f"[bold]Email:[/bold]      {email}")


@cli.command()
@click.argument("url")
@click.option("--no-ai", is_flag=True, default=False, help="Skip the LLM fallback layer")
def offices(url, no_ai):
    """Extract office locations from a company page."""
    fetcher = PageFetcher()
    llm = None if no_ai else LLMClient()

    async def _run():
        html = await fetcher.fetch(url)
        if not html:
            return None
        return await run_location_cascade(html, url, llm)

    with console.status(f"[bold green]Fetching {url}..."):
        report = asyncio.run(_run())

    if report is None:
        console.print(f"[red]Could not fetch {url}.[/red]")
        sys.exit(1)

    table = Table(title=f"Offices ({len(report.offices)})")
    table.add_column("City")
    table.add_column("Country")
    table.add_column("Address")
    for office in report.offices:
        table.add_row(office.city, office.country, office.address)
    console.print(table)

    for name, result in report.layers.items():
        console.print(f"  [dim]{name}:[/dim] {describe(result)}")


@cli.command()
@click.argument("job_title")
@click.argument("candidate_titles", nargs=-1)
def seniority(job_title, candidate_titles):
    """Show the seniority floor for a job and which titles clear it."""
    level = determine_seniority_level(job_title)
    minimum = get_minimum_seniority_for_job(job_title)
    console.print(f"[bold]{job_title}[/bold]: {level.name} (minimum candidate level {minimum.name})")

    if not candidate_titles:
        return

    result = filter_candidates_by_seniority(list(candidate_titles), job_title, title_of=lambda t: t)
    table = Table()
    table.add_column("Title")
    table.add_column("Level")
    table.add_column("Decision")
    for decision in result.decisions:
        verdict = "[green]ACCEPT[/green]" if decision.accepted else "[red]REJECT[/red]"
        table.add_row(decision.title, decision.level.name, verdict)
    console.print(table)


@cli.command()
@click.argument("rows_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--kind",
    type=click.Choice(["candidate", "company"]),
    default="candidate",
    help="Type of record in the file",
)
@click.option("--job-id", default=None, help="Job identifier (generated if omitted)")
@click.option("--batch-size", type=int, default=None, help="Items per concurrent batch")
def ingest(rows_path, kind, job_id, batch_size):
    """Queue and process a JSON file of row dicts."""
    with open(rows_path, encoding="utf-8") as fh:
        rows = json.load(fh)
    if not isinstance(rows, list):
        console.print("[red]Error: the file must contain a JSON list of objects.[/red]")
        sys.exit(1)

    store = RecordStore()
    search = SerpAPIClient()
    fetcher = PageFetcher()
    pipelines = {
        "candidate": CandidatePipeline(build_default_verifier(), store),
        "company": CompanyPipeline(DomainResearcher(search), fetcher, LLMClient(), store),
    }
    queue = IngestionQueue(TaskStore(), pipelines, batch_size=batch_size)

    recovered = queue.recover()
    if recovered:
        console.print(f"[yellow]Requeued {recovered} stranded task(s).[/yellow]")

    job_id = job_id or uuid.uuid4().hex[:12]
    queue.enqueue(job_id, rows, kind=kind)

    with console.status(f"[bold green]Processing {len(rows)} {kind} row(s)..."):
        summary = asyncio.run(queue.run(job_id))

    console.print(
        Panel(
            f"Successful: [green]{summary.successful}[/green]  |  "
            f"Duplicates: [magenta]{summary.duplicates}[/magenta]  |  "
            f"Failed: [red]{summary.failed}[/red]",
            title=f"Job {job_id}",
        )
    )
    for error in summary.errors:
        console.print(f"  [red]•[/red] {error}")


@cli.command()
def dedupe():
    """Merge stored candidates that share a LinkedIn URL/email hash."""
    result = auto_deduplicate(RecordStore())
    console.print(
        f"Found [magenta]{result.duplicates_found}[/magenta] duplicate(s), "
        f"merged [green]{result.merged_count}[/green]."
    )


def main():
    cli()


if __name__ == "__main__":
    main()
