# -*- coding: utf-8 -*-

import os
import json
import logging
from contextlib import contextmanager
from pathlib import Path

import yaml


#=======================================================================
# JSON Lines Utilities
#=======================================================================

def to_jsonl(lines):
    """
    Serialize a list of dictionaries as JSON Lines text.

    Args:
        lines (list): List of dictionaries to serialize.

    Returns:
        str: One JSON object per line, newline terminated.
    """
    return "".join(json.dumps(line, ensure_ascii=False) + '\n' for line in lines)


def write_jsonl(lines, path):
    """
    Write a list of dictionaries to a JSON Lines file.

    Args:
        lines (list): List of dictionaries to write.
        path (str): Path to the output file.
    """
    with open(path, 'w', encoding='utf-8') as f:
        f.write(to_jsonl(lines))


def read_jsonl(path):
    """
    Read a JSON Lines file and return a list of dictionaries.
    Blank lines are ignored.
    """
    with open(path, 'r', encoding='utf-8') as f:
        return [json.loads(line) for line in f if line.strip()]


#=======================================================================
# YAML Utilities
#=======================================================================

def read_yaml(path):
    """Read a YAML file. Returns None for an empty file."""
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f)


def write_yaml(data, path):
    """Write data to a YAML file keeping key order."""
    with atomic_path(path) as tmp_path:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


#=======================================================================
# Path Utilities
#=======================================================================

@contextmanager
def atomic_path(path):
    """
    Yield a temporary sibling path and move it over `path` once the
    caller has finished writing it. The temporary file is removed if
    writing fails, leaving the previous file untouched.
    """
    path = Path(path)
    tmp_path = path.with_name(path.name + '.tmp')
    try:
        yield tmp_path
        os.replace(tmp_path, path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def mask_path(path, base_dir=None):
    """
    Masks or simplifies a path for logging.

    Args:
        path (str): The full path to mask.
        base_dir (str, optional): The base directory to make the path relative to.
            Defaults to the PROJECT_DIR environment variable.

    Returns:
        str: The masked or simplified path.
    """
    path = Path(path)

    if base_dir is None:
        base_dir = os.getenv('PROJECT_DIR')

    if base_dir:
        try:
            return str(path.relative_to(Path(base_dir)))
        except ValueError:
            pass

    home = Path.home()
    if str(path).startswith(str(home)):
        return f"~/{path.relative_to(home)}"
    return str(path)


def assert_required_path(path, description="Path"):
    """
    Ensures that a required file or directory exists.

    Raises:
        FileNotFoundError: If the path does not exist.
    """
    if not os.path.exists(path):
        logging.error(f"{description} not found at: {mask_path(path)}")
        raise FileNotFoundError(f"{description} not found: {path}")


def ensure_output_path(path, description="Output folder"):
    """Create the directory if it does not exist yet."""
    if not os.path.exists(path):
        logging.info(f"{description} does not exist. Creating it at: {mask_path(path)}")
        os.makedirs(path, exist_ok=True)
