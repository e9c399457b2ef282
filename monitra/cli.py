"""Command-line interface for Monitra."""

import json
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from monitra.config_loader import (
    ensure_directories,
    get_currency_config,
    get_extraction_config,
    get_llm_config,
    load_config,
)
from monitra.currency import CANONICAL_CURRENCY, build_rate_table, convert
from monitra.errors import ExtractionError, FetchError
from monitra.fetcher import build_fetcher
from monitra.llm_client import LLMClient
from monitra.models import get_engine, get_session_factory, init_db
from monitra.page_analyzer import StructuralPageAnalyzer
from monitra.pipeline import build_orchestrator
from monitra.records import LocatorPair
from monitra.repositories import DomainLocatorStore, domain_from_url
from monitra.selector_detector import AISelectorDetector


class DecimalParamType(click.ParamType):
    """Click param type for exact decimal amounts."""

    name = "decimal"

    def convert(self, value, param, ctx):
        if isinstance(value, Decimal):
            return value
        try:
            return Decimal(str(value))
        except InvalidOperation:
            self.fail(f"{value!r} is not a valid amount", param, ctx)


DECIMAL_TYPE = DecimalParamType()


def setup_logging(config: dict):
    """Setup logging configuration."""
    log_config = config.get("logging", {})
    level = log_config.get("level", "INFO")
    log_file = log_config.get("file", "data/logs/monitra.log")

    # Ensure log directory exists
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}",
    )
    logger.add(
        log_file,
        level=level,
        rotation=log_config.get("rotation", "1 week"),
        retention=log_config.get("retention", "1 month"),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name} | {message}",
    )


def _session_factory(config: dict):
    engine = get_engine(config)
    init_db(engine)
    return get_session_factory(engine)


def _rates(config: dict):
    return build_rate_table(get_currency_config(config).get("rates"))


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """Monitra - self-learning product price extraction."""
    ctx.ensure_object(dict)

    try:
        cfg = load_config(config)
        ctx.obj["config"] = cfg
        ctx.obj["config_path"] = config

        ensure_directories(cfg)

        if verbose:
            cfg.setdefault("logging", {})["level"] = "DEBUG"
        setup_logging(cfg)

        logger.debug("Monitra initialized")

    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("urls", nargs=-1, required=True)
@click.option("--json", "as_json", is_flag=True, help="Print records as JSON")
@click.option("--canonical", is_flag=True, help="Also show the price in the canonical currency")
@click.pass_context
def extract(ctx, urls, as_json: bool, canonical: bool):
    """Extract product records from one or more product URLs."""
    config = ctx.obj["config"]
    rates = _rates(config)

    results = []
    failures = 0
    with build_orchestrator(config) as orchestrator:
        for url in urls:
            try:
                outcome = orchestrator.run(url)
            except ExtractionError as e:
                failures += 1
                logger.error("Extraction failed for {}: {}", url, e)
                if as_json:
                    results.append({"source_url": url, "error": str(e), "error_type": type(e).__name__})
                else:
                    click.echo(f"\n{url}\n  ERROR ({type(e).__name__}): {e}")
                continue

            record = outcome.record
            row = record.as_dict()
            row["method"] = outcome.method
            row["states"] = [state.value for state in outcome.states]
            if canonical:
                row["canonical_price"] = str(record.canonical_price(rates))
            results.append(row)

            if not as_json:
                click.echo(f"\n{url}")
                click.echo(f"  Name:     {record.name}")
                click.echo(f"  Brand:    {record.brand or 'N/A'}")
                click.echo(f"  Price:    {record.price} {record.currency}")
                if canonical:
                    click.echo(f"  Canonical: {row['canonical_price']} {CANONICAL_CURRENCY}")
                click.echo(f"  Method:   {outcome.method}")
                click.echo(f"  States:   {' -> '.join(row['states'])}")

    if as_json:
        click.echo(json.dumps(results if len(urls) > 1 else results[0], indent=2, ensure_ascii=False))

    if failures:
        sys.exit(1)


@cli.command()
@click.argument("url", required=False)
@click.option("--html-file", type=click.Path(exists=True, dir_okay=False), help="Analyze a saved HTML file instead of fetching")
@click.option("--detect", is_flag=True, help="Also ask the language model for locators")
@click.pass_context
def analyze(ctx, url: Optional[str], html_file: Optional[str], detect: bool):
    """Show the structural analysis of a product page."""
    config = ctx.obj["config"]
    extraction_config = get_extraction_config(config)

    if not url and not html_file:
        raise click.UsageError("Provide a URL or --html-file")

    if html_file:
        html = Path(html_file).read_text(encoding="utf-8", errors="replace")
    else:
        try:
            with build_fetcher(config) as fetcher:
                html = fetcher.fetch(url)
        except FetchError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    analyzer = StructuralPageAnalyzer(max_text_length=int(extraction_config.get("candidate_text_max_length", 200)))
    analysis = analyzer.analyze(html)
    click.echo(analysis.to_summary(max_chars=int(extraction_config.get("summary_max_chars", 2500))))

    if detect:
        detector = AISelectorDetector(LLMClient(get_llm_config(config)), analyzer=analyzer)
        pair = detector.detect(html, analysis=analysis)
        click.echo(f"\nName locator:  {pair.name_locator}")
        click.echo(f"Price locator: {pair.price_locator}")


@cli.group()
def locators():
    """Inspect and edit learned domain locators."""


@locators.command("list")
@click.pass_context
def locators_list(ctx):
    """List every domain with learned locators."""
    store = DomainLocatorStore(_session_factory(ctx.obj["config"]))
    rows = store.list_all()
    if not rows:
        click.echo("No learned locators yet.")
        return
    for row in rows:
        click.echo(f"{row['domain']}")
        click.echo(f"  name:  {row['name_locator']}")
        click.echo(f"  price: {row['price_locator']}")


@locators.command("show")
@click.argument("domain")
@click.pass_context
def locators_show(ctx, domain: str):
    """Show the locators learned for DOMAIN (a hostname or URL)."""
    store = DomainLocatorStore(_session_factory(ctx.obj["config"]))
    key = domain_from_url(domain)
    pair = store.get(key)
    if pair is None:
        click.echo(f"No locators stored for {key}", err=True)
        sys.exit(1)
    click.echo(f"{key}")
    click.echo(f"  name:  {pair.name_locator}")
    click.echo(f"  price: {pair.price_locator}")


@locators.command("set")
@click.argument("domain")
@click.option("--name", "name_locator", required=True, help="Name locator")
@click.option("--price", "price_locator", required=True, help="Price locator")
@click.pass_context
def locators_set(ctx, domain: str, name_locator: str, price_locator: str):
    """Store locators for DOMAIN by hand."""
    store = DomainLocatorStore(_session_factory(ctx.obj["config"]))
    key = domain_from_url(domain)
    store.upsert(key, LocatorPair(name_locator=name_locator, price_locator=price_locator))
    click.echo(f"Saved locators for {key}")


@cli.command("convert")
@click.argument("amount", type=DECIMAL_TYPE)
@click.argument("from_code")
@click.argument("to_code", required=False, default=CANONICAL_CURRENCY)
@click.pass_context
def convert_cmd(ctx, amount: Decimal, from_code: str, to_code: str):
    """Convert AMOUNT from FROM_CODE to TO_CODE (default USD)."""
    result = convert(amount, from_code.upper(), to_code.upper(), rates=_rates(ctx.obj["config"]))
    click.echo(f"{amount} {from_code.upper()} = {result} {to_code.upper()}")


@cli.command("init-db")
@click.option("--backend", type=click.Choice(["sqlite", "postgresql"]), default=None, help="Database backend")
@click.pass_context
def init_db_cmd(ctx, backend: Optional[str]):
    """Create the locator tables."""
    config = ctx.obj["config"]
    engine = get_engine(config, backend)
    init_db(engine)
    click.echo(f"Database initialized ({engine.url.get_backend_name()})")


if __name__ == "__main__":
    cli()
