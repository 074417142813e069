#!/usr/bin/env python3
"""
Command line entry point for NDFC Migrate.

Every stage can be run on its own, or several in pipeline order with `run`.
"""

import logging
import sys
from dataclasses import dataclass
from typing import List, Optional, Tuple

import click
from rich.console import Console

from ndfc_migrate import __version__
from ndfc_migrate.artifacts import ArtifactStore
from ndfc_migrate.collector import FactCollector
from ndfc_migrate.config import load_settings
from ndfc_migrate.errors import ConfigError, InventoryError, MigrationError
from ndfc_migrate.inventory import load_fabrics, load_inventory, select
from ndfc_migrate.ndfc_client import NDFCClient
from ndfc_migrate.onboarding import OnboardingMode, partition
from ndfc_migrate.report import ExcelReport, onboarding_table, print_reports
from ndfc_migrate.tools import setupLogging
from ndfc_migrate.validator import YAMLValidator
from ndfc_migrate.workflow import STAGES, MigrationWorkflow, select_stages

logger = logging.getLogger(__name__)
console = Console()

EXIT_FAILED = 1
EXIT_INVALID = 2


@dataclass
class RunOptions:
    config_file: Optional[str]
    inventory: str
    fabrics_file: str
    output_dir: Optional[str]
    limit: Tuple[str, ...]
    fabric: Optional[str]
    role: Optional[str]
    dry_run: bool
    report_file: Optional[str]


def _split(values) -> List[str]:
    items = []
    for value in values or ():
        items.extend(v.strip() for v in value.split(",") if v.strip())
    return items


def _load_records(options: RunOptions):
    records = load_inventory(options.inventory)
    return select(records, limit=options.limit or None, fabric=options.fabric, role=options.role)


def execute(options: RunOptions, stages: List[str]) -> int:
    """
    Run stages and print the summary.

    Returns:
        Exit code: 0 when everything succeeded, 1 when any item failed
    """
    settings = load_settings(options.config_file, output_dir=options.output_dir)
    records = _load_records(options)
    fabrics = load_fabrics(options.fabrics_file)

    store = ArtifactStore(settings.output_dir)
    store.enrich(records)

    collector = None
    if "profile" in stages:
        settings.require_switch_credentials()
        collector = FactCollector(settings.switch_username, settings.switch_password, settings.max_workers)

    client = None
    if any(stage != "profile" for stage in stages):
        settings.require_ndfc()
        client = NDFCClient(
            settings.ndfc_host,
            settings.ndfc_username,
            settings.ndfc_password,
            domain=settings.ndfc_domain,
            verify_ssl=settings.verify_ssl,
            timeout=settings.timeout,
        )
        if not client.login():
            console.print("[red]Failed to authenticate to NDFC[/red]")
            return EXIT_FAILED

    if options.dry_run:
        console.print("[yellow]Dry run: nothing will be changed on the controller[/yellow]")

    workflow = MigrationWorkflow(
        settings, records, fabrics,
        client=client, collector=collector, store=store, dry_run=options.dry_run,
    )
    try:
        reports = workflow.run(stages)
    finally:
        if client is not None:
            client.logout()

    print_reports(reports, dry_run=options.dry_run)
    if options.report_file:
        path = ExcelReport().save(reports, options.report_file)
        console.print(f"[cyan]Report saved to: {path}[/cyan]")

    if all(report.ok for report in reports):
        return 0
    return EXIT_FAILED


def _run_guarded(func, *args) -> int:
    try:
        return func(*args)
    except (ConfigError, InventoryError) as e:
        console.print(f"[red]{e}[/red]")
        return EXIT_INVALID
    except MigrationError as e:
        logger.error(str(e))
        return EXIT_FAILED


@click.group()
@click.version_option(version=__version__)
@click.option('--config', 'config_file', type=click.Path(exists=True), help='JSON or YAML settings file')
@click.option('-i', '--inventory', default='inventory.yml', show_default=True, help='Switch inventory file')
@click.option('-f', '--fabrics', 'fabrics_file', default='fabrics.yml', show_default=True,
              help='Fabric definition file')
@click.option('--output-dir', default=None, help='Directory for profile artifacts and plans')
@click.option('-l', '--limit', multiple=True, help='Hostnames or patterns, comma separated; @file reads a retry file')
@click.option('--fabric', default=None, help='Only switches in this fabric')
@click.option('--role', default=None, help='Only switches with this role')
@click.option('--dry-run', is_flag=True, default=False, help='Report intended changes without applying them')
@click.option('--log-level', default='INFO', show_default=True,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
@click.option('--log-dir', default='logs', show_default=True, help='Directory for log files')
@click.option('--report', 'report_file', default=None, help='Write an Excel report to this file')
@click.pass_context
def cli(ctx, config_file, inventory, fabrics_file, output_dir, limit, fabric, role, dry_run, log_level,
        log_dir, report_file):
    """NDFC Migrate - move standalone NX-OS switches under NDFC management."""
    setupLogging(log_level, log_dir=log_dir)
    ctx.obj = RunOptions(
        config_file=config_file,
        inventory=inventory,
        fabrics_file=fabrics_file,
        output_dir=output_dir,
        limit=tuple(limit),
        fabric=fabric,
        role=role,
        dry_run=dry_run,
        report_file=report_file,
    )


@cli.command()
@click.pass_obj
def classify(options: RunOptions):
    """Show how each switch will be onboarded."""
    def _classify():
        records = _load_records(options)
        console.print(onboarding_table(records))
        groups = partition(records)
        console.print(
            f"{len(groups[OnboardingMode.PREPROVISION])} pre-provision, "
            f"{len(groups[OnboardingMode.DISCOVER])} discover, "
            f"{len(groups[OnboardingMode.SKIP])} skipped"
        )
        return 0

    sys.exit(_run_guarded(_classify))


@cli.command()
@click.pass_obj
def validate(options: RunOptions):
    """Validate the inventory, fabric definitions and profile artifacts."""
    def _validate():
        records = load_inventory(options.inventory)
        fabrics = load_fabrics(options.fabrics_file)
        code = 0

        for record in records:
            if record.fabric not in fabrics:
                console.print(f"[red]{record.hostname}: fabric {record.fabric} is not defined[/red]")
                code = EXIT_INVALID
        partition(records)

        settings = load_settings(options.config_file, output_dir=options.output_dir)
        validator = YAMLValidator()
        results = validator.validate_directory(settings.output_dir)
        validator.display_validation_report(results)
        if results["invalid"]:
            code = code or EXIT_FAILED

        if code == 0:
            console.print(f"[green]{len(records)} switches and {len(fabrics)} fabrics are valid[/green]")
        return code

    sys.exit(_run_guarded(_validate))


def _stage_command(stage: str):
    @click.pass_obj
    def command(options: RunOptions):
        sys.exit(_run_guarded(execute, options, [stage]))

    command.__doc__ = f"Run the {stage} stage."
    return cli.command(name=stage)(command)


for _stage in STAGES:
    _stage_command(_stage)


@cli.command()
@click.option('-t', '--tags', multiple=True, help=f"Stages to run, comma separated ({', '.join(STAGES)})")
@click.option('--skip-tags', multiple=True, help='Stages to leave out, comma separated')
@click.pass_obj
def run(options: RunOptions, tags, skip_tags):
    """Run several stages in pipeline order (all but bootstrap by default)."""
    try:
        stages = select_stages(_split(tags), _split(skip_tags))
    except MigrationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(EXIT_INVALID)

    console.print(f"[bold cyan]Stages: {', '.join(stages)}[/bold cyan]")
    sys.exit(_run_guarded(execute, options, stages))


if __name__ == '__main__':
    cli()
