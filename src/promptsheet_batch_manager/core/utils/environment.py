# -*- coding: utf-8 -*-

"""
Environment configuration management.
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import dotenv


def _env_search_paths() -> List[Path]:
    """Candidate .env files: current directory first, then the project root."""
    search_paths = [
        Path.cwd() / '.env.local',
        Path.cwd() / '.env',
    ]
    # src/promptsheet_batch_manager/core/utils -> project root
    project_root = Path(__file__).resolve().parents[4]
    search_paths.extend([
        project_root / '.env.local',
        project_root / '.env',
    ])
    return search_paths


def load_environment_variables(env_file: Optional[str] = None, verbose: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        env_file: Specific .env file path. If None, the first existing file
            among the search paths is loaded.
        verbose: Whether to log environment loading details.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    if env_file:
        env_path = Path(env_file)
        if not env_path.exists():
            if verbose:
                logging.warning(f"Specified .env file not found: {env_path}")
            return False
        dotenv.load_dotenv(env_path)
        if verbose:
            logging.debug(f"Loaded environment from: {env_path}")
        return True

    for env_path in _env_search_paths():
        if env_path.exists():
            dotenv.load_dotenv(env_path)
            if verbose:
                logging.debug(f"Loaded environment from: {env_path}")
            return True

    if verbose:
        logging.debug("No .env file found in search paths")
    return False


def validate_required_env_vars(api_type: str = "OpenAI") -> list:
    """
    List environment variables the chosen API needs but which are unset.
    The API key may still come from the workbook Config sheet.

    Args:
        api_type: Either "OpenAI" or "AzureOpenAI"
    """
    if api_type == "AzureOpenAI":
        required = ['AZURE_OPENAI_API_KEY', 'AZURE_OPENAI_ENDPOINT']
    else:
        required = ['OPENAI_API_KEY']
    return [name for name in required if not os.getenv(name)]


def setup_environment(verbose: bool = False, env_file: Optional[str] = None) -> bool:
    """
    Set up environment for the package. A .env file is optional.
    """
    env_loaded = load_environment_variables(env_file, verbose)

    if verbose and not env_loaded:
        logging.debug("No .env file loaded. Relying on system environment variables.")
        for env_path in _env_search_paths():
            logging.debug(f"  - {env_path}")

    return True
