"""Click CLI entry point for the sorter command.

Handles argument parsing, config loading, and error display. All business
logic is delegated to ``pipeline``, ``categorizer``, ``config``,
``rule_store`` and ``export`` modules.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from statement_sorter import __version__


def _configure_logging(verbose: bool, debug: bool) -> None:
    """Set up logging based on verbosity flags."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        force=True,
    )


def _load_project(root: Path):
    """Load config and open the rule store, exiting with a message on failure."""
    from statement_sorter.config import load_config
    from statement_sorter.rule_store import TomlRuleStore

    try:
        config = load_config(root)
    except FileNotFoundError as exc:
        click.echo(
            f"Error: {exc}. Run 'sorter init' to create the project structure.",
            err=True,
        )
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error loading configuration: {exc}", err=True)
        sys.exit(1)

    return config, TomlRuleStore(root / config.rules_dir)


@click.group()
@click.version_option(version=__version__, prog_name="statement-sorter")
def cli() -> None:
    """Import bank statement CSVs and sort transactions into budget categories."""


@cli.command(name="import")
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--bank", default=None, help="Bank format id to force (see 'sorter banks').")
@click.option("--name", default=None, help="Output file name (default: first input's name).")
@click.option("--verbose", is_flag=True, default=False, help="Detailed progress output.")
@click.option("--debug", is_flag=True, default=False, help="Developer-level diagnostics.")
def import_(files: tuple[str, ...], bank: str | None, name: str | None, verbose: bool, debug: bool) -> None:
    """Parse and categorize one or more bank CSV exports."""
    _configure_logging(verbose, debug)
    root = Path.cwd()
    config, store = _load_project(root)

    from statement_sorter.formats import get_bank_format

    bank_profile = None
    if bank:
        try:
            bank_profile = get_bank_format(bank)
        except KeyError:
            click.echo(f"Error: Unknown bank format {bank!r}. See 'sorter banks'.", err=True)
            sys.exit(1)

    from statement_sorter.pipeline import read_csv_file, run

    try:
        sources = [(Path(f).name, read_csv_file(Path(f))) for f in files]
    except (OSError, UnicodeDecodeError) as exc:
        click.echo(f"Error reading input: {exc}", err=True)
        sys.exit(1)

    try:
        result = run(sources, store, config, bank_profile)
    except Exception as exc:
        click.echo(f"Error running import: {exc}", err=True)
        sys.exit(1)

    from statement_sorter.export import export, print_summary

    output_name = name or Path(files[0]).stem
    if result.transactions:
        try:
            output_path = export(result.transactions, root / config.output_dir, output_name)
        except Exception as exc:
            click.echo(f"Error writing output: {exc}", err=True)
            sys.exit(1)
        if verbose:
            click.echo(f"Wrote output to {output_path}")

    print_summary(result, output_name)

    if not result.transactions:
        click.echo("Error: No transactions could be imported.", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--original", required=True, type=click.Path(exists=True), help="Exported CSV."
)
@click.option(
    "--corrected", required=True, type=click.Path(exists=True), help="User-corrected copy."
)
@click.option("--verbose", is_flag=True, default=False, help="Show each learned rule.")
def learn(original: str, corrected: str, verbose: bool) -> None:
    """Learn category rules from a corrected copy of an exported CSV.

    Every transaction whose category was changed is recorded as a manual
    recategorization, which creates or reinforces the rule for its merchant.
    Changed categories and ignore flags are written back to the original
    export.
    """
    _configure_logging(verbose, debug=False)
    root = Path.cwd()
    config, store = _load_project(root)

    from statement_sorter.categorizer import CategorizationEngine
    from statement_sorter.export import export, load_transactions

    try:
        original_txns = load_transactions(Path(original))
        corrected_txns = load_transactions(Path(corrected))
    except KeyError as exc:
        click.echo(f"Error: CSV file is missing required column: {exc}", err=True)
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error reading CSV: {exc}", err=True)
        sys.exit(1)

    engine = CategorizationEngine(original_txns, store, config.user, config=config)
    originals = {t.transaction_id: t for t in original_txns}
    changed = 0
    ignored = 0

    try:
        for fixed in corrected_txns:
            txn = originals.get(fixed.transaction_id)
            if txn is None:
                continue
            if fixed.category and fixed.category != txn.category:
                engine.update_transaction_category(txn.transaction_id, fixed.category)
                changed += 1
                if verbose:
                    click.echo(f'  "{txn.merchant}" -> {fixed.category}')
            if fixed.is_ignored != txn.is_ignored:
                engine.toggle_ignore(txn.transaction_id)
                ignored += 1
    except Exception as exc:
        click.echo(f"Error saving learned rules: {exc}", err=True)
        sys.exit(1)

    # Write the corrections back over the original export so ignore flags
    # and user categories survive into the next summary.
    original_path = Path(original)
    if changed or ignored:
        try:
            export(engine.transactions, original_path.parent, original_path.stem)
        except Exception as exc:
            click.echo(f"Error writing output: {exc}", err=True)
            sys.exit(1)

    click.echo()
    click.echo("== Learn Summary ==")
    click.echo(f"  Recategorized:      {changed}")
    click.echo(f"  Ignore toggled:     {ignored}")
    click.echo(f"  Rules on file:      {len(engine.rules)}")
    if changed or ignored:
        click.echo(f"  Updated:            {original_path}")
    click.echo()


@cli.group()
def rules() -> None:
    """List or delete learned category rules."""


@rules.command(name="list")
def list_rules() -> None:
    """Show the current user's learned rules."""
    root = Path.cwd()
    config, store = _load_project(root)

    try:
        loaded = store.load(config.user)
    except Exception as exc:
        click.echo(f"Error loading rules: {exc}", err=True)
        sys.exit(1)

    if not loaded:
        click.echo("No learned rules.")
        return

    for rule in sorted(loaded, key=lambda r: r.merchant_pattern):
        click.echo(
            f"{rule.id}  {rule.merchant_pattern:<30} -> {rule.category:<15} "
            f"({rule.transaction_count}x, {rule.confidence:.2f})"
        )


@rules.command(name="delete")
@click.argument("rule_id")
def delete_rule(rule_id: str) -> None:
    """Delete a learned rule by id."""
    root = Path.cwd()
    config, store = _load_project(root)

    from statement_sorter.categorizer import CategorizationEngine

    engine = CategorizationEngine([], store, config.user, config=config)
    try:
        engine.delete_rule(rule_id)
    except KeyError:
        click.echo(f"Error: No rule with id {rule_id!r}.", err=True)
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error saving rules: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Deleted rule {rule_id}")


@cli.command()
def banks() -> None:
    """List supported bank export formats."""
    from statement_sorter.formats import supported_banks

    for profile in supported_banks():
        click.echo(f"{profile.id:<12} {profile.name}")


@cli.command()
@click.option(
    "--dir", "target_dir", default=".", type=click.Path(), help="Directory to initialize."
)
def init(target_dir: str) -> None:
    """Initialize a new data directory with the standard structure."""
    from statement_sorter.config import initialize

    target = Path(target_dir).resolve()

    try:
        initialize(target)
    except Exception as exc:
        click.echo(f"Error initializing project: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Initialized statement sorter project in {target}")
