"""Filesystem helpers for config loading and encoded-job output.

Provides:
    - Atomic writes: tmp file -> fsync -> rename (no partial job files)
    - YAML loading via PyYAML ``safe_load``
    - Directory creation with exist_ok semantics

All paths use pathlib.Path.

Usage:
    from laser_control.utils import fs
    data = fs.load_yaml("laser.yaml")
    fs.atomic_write_bytes("out/job.lgc", encoded)
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

import yaml


def ensure_dir(p: Union[str, Path]) -> Path:
    """Create directory if it doesn't exist, return Path object.

    Parameters
    ----------
    p : Union[str, Path]
        Directory path

    Returns
    -------
    Path
        Path object (guaranteed to exist)
    """
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_bytes(path: Union[str, Path], data: bytes) -> None:
    """Write bytes to *path* atomically.

    Parameters
    ----------
    path : Union[str, Path]
        Target file path
    data : bytes
        Content to write

    Notes
    -----
    The data lands in a temporary file in the same directory, is fsynced,
    then renamed over the target.  Readers see either the old file or the
    complete new one.
    """
    path = Path(path)
    ensure_dir(path.parent)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load YAML file safely.

    Parameters
    ----------
    path : Union[str, Path]
        YAML file path

    Returns
    -------
    Dict[str, Any]
        Parsed YAML content

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    yaml.YAMLError
        If YAML parsing fails
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e
