# -*- coding: utf-8 -*-

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import click

from ..core.errors import (
    ConfigurationError,
    NoEligibleRowsError,
    OperationInProgressError,
    PreconditionError,
    RemoteAPIError,
)
from ..core.batching.files import BATCH_ENDPOINT
from ..core.batching.manager import PromptSheetManager
from ..core.utils.clients import create_client
from ..core.utils.config import Settings
from ..core.utils.registry import get_registry
from ..core.utils.workbook import Workbook
from ..core.utils.misc import (
    mask_path,
    ensure_output_path,
    write_yaml,
)


AZURE_BATCH_ENDPOINT = "/chat/completions"


def setup_logging(verbose=False, quiet=False):
    """Configure logging for CLI execution."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    # Configure root logger
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True  # Override any existing configuration
    )

    # Reduce noise from external libraries in non-verbose mode
    if not verbose:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("openai").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("filelock").setLevel(logging.WARNING)

    if verbose:
        logger = logging.getLogger(__name__)
        logger.debug("CLI logging setup completed")


def _validate_positive_integer_callback(ctx, param, value):
    """Validate that the provided value is a positive integer."""
    if value is not None and value <= 0:
        raise click.BadParameter("Value must be a positive integer.")
    return value


#=======================================================================
# Setup Command Utilities
#=======================================================================

def _handle_existing_run_setup(run_name, existing_config, workbook, azure, endpoint, force):
    """Update an existing run with the options provided."""
    provided_options = {}
    if workbook is not None:
        provided_options['workbook_folder'] = str(Path(workbook).resolve())
    if azure is not None:
        provided_options['API'] = "AzureOpenAI" if azure else "OpenAI"
    if endpoint is not None:
        provided_options['azure_endpoint'] = endpoint

    if 'workbook_folder' in provided_options and \
            provided_options['workbook_folder'] != existing_config.get('workbook_folder'):
        logging.warning("Pointing an existing run to another workbook is discouraged: "
                        "its batch ledger stays in the old workbook. We recommend "
                        "setting up a new run instead.")
        if not force:
            click.confirm("Do you really want to proceed?", abort=True)
        ensure_output_path(provided_options['workbook_folder'], "Workbook folder")

    changes = _get_configuration_changes(existing_config, provided_options)
    if not changes:
        logging.info(f"No changes detected for run '{run_name}'")
        _display_current_config(existing_config)
        return

    logging.info(f"Run '{run_name}' already exists. The following changes will be made:")
    for change in changes:
        logging.info(f"  {change['option']}: '{change['old']}' → '{change['new']}'")
    if not force:
        click.confirm(
            f"Do you want to update the configuration for run '{run_name}'?",
            abort=True
        )

    updated_config = existing_config.copy()
    updated_config.update(provided_options)
    if 'API' in provided_options:
        updated_config['endpoint'] = _default_endpoint(updated_config['API'])

    _save_and_register_configuration(updated_config, run_name)
    logging.info(f"Configuration updated successfully for run '{run_name}'!")


def _handle_new_run_setup(run_name, workbook, azure, endpoint):
    """
    Create a new run configuration file in the workbook folder and
    register it in the global registry.
    """
    if workbook is None:
        logging.error("For new runs, the --workbook option is required.")
        logging.info(f"Example: psbm -r {run_name} setup --workbook ./my_workbook/")
        raise SystemExit(1)

    api = "AzureOpenAI" if azure else "OpenAI"
    workbook_folder = str(Path(workbook).resolve())
    ensure_output_path(workbook_folder, "Workbook folder")

    config = {
        "run": run_name,
        "API": api,
        "workbook_folder": workbook_folder,
        "endpoint": _default_endpoint(api),
        "azure_endpoint": endpoint,
        "created_at": datetime.now().isoformat(),
    }
    _save_and_register_configuration(config, run_name)

    logging.info(f"Setup complete! You can now run other commands for run '{run_name}'")
    logging.info("Next steps:")
    logging.info(f"1. Create template sheets: psbm -r {run_name} init-workbook")
    logging.info(f"2. Run prompts synchronously: psbm -r {run_name} run --rows 10")
    logging.info(f"3. Or submit a batch: psbm -r {run_name} create-batch")


def _default_endpoint(api):
    return AZURE_BATCH_ENDPOINT if api == "AzureOpenAI" else BATCH_ENDPOINT


def _get_configuration_changes(existing_config, provided_options):
    """List of {'option', 'old', 'new'} for the options that differ."""
    changes = []
    for key, new_value in provided_options.items():
        old_value = existing_config.get(key, 'not set')
        if str(old_value) != str(new_value):
            if 'folder' in key:
                old_value, new_value = mask_path(str(old_value)), mask_path(str(new_value))
            changes.append({'option': key, 'old': old_value, 'new': new_value})
    return changes


def _display_current_config(config):
    """Display current configuration in a readable format."""
    logging.info("Current configuration:")
    for key in ['workbook_folder', 'API', 'endpoint', 'azure_endpoint']:
        if config.get(key):
            value = config[key]
            if 'folder' in key:
                value = mask_path(str(value))
            logging.info(f"  {key}: {value}")


def _save_and_register_configuration(config, run_name):
    """Save the configuration to the workbook folder and the registry."""
    config['updated_at'] = datetime.now().isoformat()

    registry = get_registry()
    config_file = registry.register_run(run_name, config['workbook_folder'])
    write_yaml(config, config_file)

    logging.info(f"Configuration saved to {mask_path(str(config_file))}")


#=======================================================================
# Manager Commands Utilities
#=======================================================================

def _build_manager(ctx, with_client=True) -> PromptSheetManager:
    """
    Build the manager of the current run. The API key comes from the
    workbook Config sheet or the environment.
    """
    api = ctx.obj.get('API', 'OpenAI')
    workbook_folder = ctx.obj['workbook_folder']
    if not Path(workbook_folder).is_dir():
        logging.error(f"Workbook folder not found: {mask_path(workbook_folder)}")
        raise SystemExit(1)

    with _exit_on_manager_errors():
        settings = Settings.from_workbook(Workbook(workbook_folder), api=api)
        client = None
        if with_client:
            settings.validate()
            client = create_client(api, api_key=settings.api_key,
                                   endpoint=ctx.obj.get('azure_endpoint'))
        return PromptSheetManager(
            client,
            workbook_folder,
            settings=settings,
            endpoint=ctx.obj.get('endpoint') or _default_endpoint(api),
            api=api,
        )


@contextmanager
def _exit_on_manager_errors():
    """
    Turn manager errors into CLI outcomes. A concurrent operation or an
    empty selection is reported and ends normally; configuration,
    precondition and API errors end with exit code 1.
    """
    try:
        yield
    except OperationInProgressError as e:
        logging.warning(str(e))
        raise SystemExit(0)
    except NoEligibleRowsError as e:
        logging.info(str(e))
        raise SystemExit(0)
    except (ConfigurationError, PreconditionError, RemoteAPIError) as e:
        logging.error(str(e))
        raise SystemExit(1)
