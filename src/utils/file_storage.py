"""Utility functions for JSON state files, downloads and classification output."""

import os
import json
import re
import shutil
from pathlib import Path
from typing import Callable, Dict, Optional


def sanitize_filename(name):
    """
    Create a safe filename from a string.

    Args:
        name: String to sanitize

    Returns:
        Safe filename string
    """
    # Remove or replace invalid filename characters
    name = re.sub(r'[<>:"/\\|?*]', '_', name)
    # Collapse whitespace and repeated underscores
    name = re.sub(r'\s+', '_', name)
    name = re.sub(r'_{2,}', '_', name)
    name = name.strip('. _')
    # Limit length, keeping the extension
    if len(name) > 100:
        stem, ext = os.path.splitext(name)
        name = stem[:100 - len(ext)] + ext
    return name


def get_fallback_filename(code, index):
    """Filename for a document whose server-side name is unknown."""
    return f"{code}_{index:02d}.pdf"


def get_code_directory(downloads_dir, code, create=True):
    """
    Get the download directory for a specific code.

    Args:
        downloads_dir: Base downloads directory
        code: Order code
        create: Create the directory if missing

    Returns:
        Path to the code's directory
    """
    code_dir = Path(downloads_dir) / sanitize_filename(code)
    if create:
        code_dir.mkdir(parents=True, exist_ok=True)
    return code_dir


def list_code_documents(downloads_dir, code):
    """Return the files downloaded for a code, sorted by name."""
    code_dir = get_code_directory(downloads_dir, code, create=False)
    if not code_dir.exists():
        return []
    return sorted(str(p) for p in code_dir.iterdir() if p.is_file())


def remove_code_directory(downloads_dir, code):
    """Delete everything downloaded for a code. Missing directories are fine."""
    code_dir = get_code_directory(downloads_dir, code, create=False)
    if code_dir.exists():
        shutil.rmtree(code_dir, ignore_errors=True)


def read_json_file(path, default_factory: Callable[[], Dict]) -> Dict:
    """
    Load a JSON state file, falling back to a fresh default.

    A missing file returns the default silently. A file that cannot be
    read or parsed also returns the default, with a warning.

    Args:
        path: File to read
        default_factory: Builds the empty default value

    Returns:
        Parsed dict, or the default
    """
    path = Path(path)
    if not path.exists():
        return default_factory()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        print(f"  ⚠ Failed to load {path}, starting from an empty default: {e}")
        return default_factory()

    if not isinstance(data, dict):
        print(f"  ⚠ Unexpected content in {path}, starting from an empty default")
        return default_factory()

    return data


def write_json_file(path, data: Dict) -> Path:
    """
    Write a JSON state file atomically (temp file + rename).

    Args:
        path: Destination file
        data: JSON-serializable dict

    Returns:
        Path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + '.tmp')

    with open(tmp_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)

    return path


def save_classification(classification, results_dir) -> Optional[str]:
    """
    Save one classification to its own JSON file, replacing any earlier one.

    Args:
        classification: Classification instance
        results_dir: Output directory

    Returns:
        Path to saved file
    """
    filename = f"{sanitize_filename(classification.code)}.json"
    filepath = Path(results_dir) / filename
    write_json_file(filepath, classification.to_dict())
    return str(filepath)
