# -*- coding: utf-8 -*-

import sys
import click
import logging

from ..core.batching.manager import initialize_workbook
from ..core.batching.summary import format_summary
from ..core.utils.registry import get_registry
from ..core.utils.misc import mask_path
from .utils import (
    setup_logging,
    _validate_positive_integer_callback,
    _handle_existing_run_setup,
    _handle_new_run_setup,
    _build_manager,
    _exit_on_manager_errors,
)


NO_RUN_COMMANDS = ['list-runs', 'unregister-run']
NO_CONFIG_COMMANDS = ['setup', 'list-runs', 'unregister-run']


@click.group()
@click.option(
    '-v', '--verbose', is_flag=True,
    help='Enable verbose (DEBUG) logging'
)
@click.option(
    '-q', '--quiet', is_flag=True,
    help='Only show warnings and errors'
)
@click.option(
    '-r', '--run-name', type=str,
    help='Name of the run to work with.'
)
@click.pass_context
def cli(ctx, verbose, quiet, run_name):
    """
    PromptSheet Batch Manager CLI - Run LLM prompts over the rows of a
    workbook, one row at a time or through the OpenAI Batch API.

    A workbook is a folder of CSV sheets: Data, Prompts, Config, and the
    Batch Status, Error Log, Execution Log and Cost Summary records.

    \b
    The API key is read from the API_KEY entry of the Config sheet or from:
    - OPENAI_API_KEY (for OpenAI)
    - AZURE_OPENAI_API_KEY, AZURE_OPENAI_ENDPOINT (for Azure OpenAI)
    """
    setup_logging(verbose=verbose, quiet=quiet)

    ctx.ensure_object(dict)
    ctx.obj['run_name'] = run_name

    # Skip checks if --help/-h is requested
    if any(arg in sys.argv for arg in ['--help', '-h']):
        return

    if not run_name and ctx.invoked_subcommand not in NO_RUN_COMMANDS:
        logging.error("Please specify a run name using the -r or --run-name option.")
        raise click.UsageError("Run name is required except for 'list-runs' "
                               "and 'unregister-run' commands.")

    if ctx.invoked_subcommand in NO_CONFIG_COMMANDS:
        return

    run_config = get_registry().get_run_config(run_name)
    if not run_config:
        logging.error(f"No configuration found for run '{run_name}'. "
                      f"Please run 'psbm --run-name {run_name} setup' "
                      "first, or use 'psbm list-runs' to see "
                      "available runs.")
        raise SystemExit(1)

    for key, value in run_config.items():
        ctx.obj[key] = value


#=======================================================================
# Run Configuration
#=======================================================================

@cli.command()
@click.option(
    '--workbook', type=click.Path(file_okay=False), default=None,
    help=('Folder holding the workbook sheets (Data.csv, Prompts.csv, '
          'Config.csv, ...). Created if missing. Required for new runs.')
)
@click.option(
    '--azure/--no-azure', default=None,
    help=('Use Azure OpenAI API instead of OpenAI API. '
          'For new runs, default is --no-azure.')
)
@click.option(
    '--endpoint', type=str, default=None,
    help=('Azure OpenAI endpoint URL. Defaults to the AZURE_OPENAI_ENDPOINT '
          'environment variable.')
)
@click.option(
    '--force', is_flag=True, default=False,
    help='Skip confirmation prompts when updating existing configurations.'
)
@click.pass_context
def setup(ctx, workbook, azure, endpoint, force):
    """
    Setup a new run or update an existing one.

    \b
    Examples:
        # New run
        psbm -r sheet1 setup --workbook ~/data/sheet1/

        # Show the configuration of an existing run
        psbm -r sheet1 setup

        # Switch an existing run to Azure OpenAI
        psbm -r sheet1 setup --azure --endpoint https://my-resource.openai.azure.com/
    """
    run_name = ctx.obj['run_name']
    existing_config = get_registry().get_run_config(run_name)

    if existing_config:
        return _handle_existing_run_setup(run_name, existing_config, workbook,
                                          azure, endpoint, force)
    return _handle_new_run_setup(run_name, workbook, azure, endpoint)


@cli.command()
@click.pass_context
def list_runs(ctx):
    """List all registered runs and their status."""
    runs = get_registry().list_runs()

    if not runs:
        logging.info("No runs registered. Use 'setup' command to create a run.")
        return

    logging.info(f"Found {len(runs)} registered runs:")
    logging.info("")

    for run in runs:
        status = "exists" if run["config_exists"] else "missing"
        logging.info(f"  {run['name']}")
        logging.info(f"    ManagerFile Status: {status}")
        logging.info(f"    Workbook folder: {mask_path(run['workbook_folder'])}")
        logging.info(f"    Last used: {run['last_accessed'][:19].replace('T', ' ')}")
        logging.info("")


@cli.command()
@click.argument('run_name', required=False)
@click.option(
    '--cleanup-orphaned', is_flag=True,
    help='Remove runs whose config files no longer exist.'
)
@click.pass_context
def unregister_run(ctx, run_name, cleanup_orphaned):
    """Remove a run from the global registry."""
    registry = get_registry()

    if cleanup_orphaned:
        orphaned = registry.cleanup_orphaned_runs()
        if not orphaned:
            logging.info("No orphaned runs found.")
        return

    run_name = run_name or ctx.obj.get('run_name')
    if not run_name:
        logging.error("Please specify a run name to unregister, or use --cleanup-orphaned")
        raise SystemExit(1)

    if registry.unregister_run(run_name):
        logging.info("Note: This only removes the registry entry, not the workbook files.")
    else:
        logging.error(f"Run '{run_name}' not found in registry")
        raise SystemExit(1)


@cli.command()
@click.pass_context
def init_workbook(ctx):
    """
    Create the template sheets of the run's workbook.

    Adds Status and Batch ID columns to Data, the Prompts and Batch Status
    headers, and default Config entries. Existing sheets and values are kept.
    """
    initialize_workbook(ctx.obj['workbook_folder'])


#=======================================================================
# Synchronous Mode
#=======================================================================

@cli.command()
@click.option(
    '--rows', 'max_rows', type=int, default=None,
    callback=_validate_positive_integer_callback,
    help='Maximum number of unprocessed rows to run.'
)
@click.option(
    '--all', 'all_rows', is_flag=True, default=False,
    help='Run every unprocessed row (default when --rows is not given).'
)
@click.pass_context
def run(ctx, max_rows, all_rows):
    """
    Run the active prompts on unprocessed rows, one call per row and prompt.
    Rows are marked with status 1 and batch ID 0 as they are done.
    """
    if max_rows is not None and all_rows:
        raise click.UsageError("Use either --rows or --all, not both.")

    manager = _build_manager(ctx)
    with _exit_on_manager_errors():
        summary = manager.run(max_rows=max_rows)
    logging.info("\n" + format_summary("Run Summary", summary.calls,
                                       summary.success, summary.failed))
    logging.info(f"Rows processed: {summary.rows}, total cost: ${summary.cost:.4f}")


#=======================================================================
# Batch Mode
#=======================================================================

@cli.command()
@click.option(
    '-m', '--openai-model', multiple=True, default=[],
    help=('Price the batch as if sent to this model. Repeat for several '
          'models. Defaults to the models of the prompts.')
)
@click.pass_context
def estimate(ctx, openai_model):
    """Estimate the Batch API cost of the next batch (upper bound)."""
    manager = _build_manager(ctx, with_client=False)
    with _exit_on_manager_errors():
        estimates = manager.estimate_batch_cost(models=list(openai_model))

    for model, estimated in estimates.items():
        label = model or "prompt models"
        logging.info(f"Estimated cost for {label}: ${estimated['cost']:.4f} "
                     f"({estimated['requests']} requests, {estimated['input_tokens']:,} "
                     f"input tokens, up to {estimated['output_tokens']:,} output tokens)")


@cli.command()
@click.pass_context
def create_batch(ctx):
    """
    Submit the next BATCH_SIZE unprocessed rows as an OpenAI Batch job.

    Every active prompt is sent for every selected row. The rows are
    marked with status 1 and the batch ID once the job is accepted.
    """
    manager = _build_manager(ctx)
    with _exit_on_manager_errors():
        result = manager.create_batch()
    logging.info(f"Batch ID: {result.local_id}")


@cli.command()
@click.pass_context
def check_status(ctx):
    """Refresh the Batch Status sheet from the provider."""
    manager = _build_manager(ctx)
    with _exit_on_manager_errors():
        result = manager.check_status()
    if result.missing:
        logging.warning(f"{len(result.missing)} batches were not listed by the provider: {result.missing}")


@cli.command()
@click.pass_context
def process_next(ctx):
    """
    Check batch status and apply the results of the first completed
    batch that has not been processed yet.
    """
    manager = _build_manager(ctx)
    with _exit_on_manager_errors():
        record, summary = manager.process_next()
    if record is not None:
        logging.info("\n" + format_summary(f"Batch {record.local_id}", summary.total,
                                           summary.success, summary.failed))


@cli.command()
@click.argument('batch_id')
@click.pass_context
def process(ctx, batch_id):
    """
    Apply the results of a completed batch.

    \b
    BATCH_ID:
      Local batch ID (as written in the Data sheet) or provider batch ID.
      A batch already processed is reported without downloading it again.
    """
    manager = _build_manager(ctx)
    with _exit_on_manager_errors():
        summary = manager.process_batch(batch_id)
    logging.info("\n" + format_summary(f"Batch {batch_id}", summary.total,
                                       summary.success, summary.failed))


@cli.command()
@click.option(
    '-s', '--status', default=None,
    help='Filter batches by status (e.g. in_progress, completed, processed).'
)
@click.pass_context
def list_batches(ctx, status):
    """List the batches recorded in the Batch Status sheet."""
    manager = _build_manager(ctx, with_client=False)
    records = manager.list_batches(status=status)

    if not records:
        logging.info("No batches found.")
        return

    logging.info(f"Found {len(records)} batches:")
    for record in records:
        logging.info(f"  {record.local_id} ({record.provider_id})")
        logging.info(f"    Status: {record.status}, created {record.created_at}")
        logging.info(f"    Requests: {record.completed}/{record.total} completed, {record.failed} failed")
        if record.results is not None:
            logging.info(f"    Applied: {record.results.success} succeeded, {record.results.failed} failed")


@cli.command()
@click.argument('batch_id')
@click.pass_context
def cancel(ctx, batch_id):
    """
    Cancel a batch job. Rows of the batch keep their status and
    batch ID, so they are not submitted again automatically.
    """
    manager = _build_manager(ctx)
    with _exit_on_manager_errors():
        record = manager.cancel_batch(batch_id)
    logging.info(f"Batch {record.local_id} is {record.status}.")
