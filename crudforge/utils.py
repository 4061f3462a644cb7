"""Utility functions for reading schema documents and writing artifacts.

This module provides functions for loading YAML or JSON schema documents from
files and URLs with proper error handling, and for writing generated
artifacts under an output directory.
"""

import json
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import urlparse

import requests
import yaml

from .core.errors import SchemaLoadError
from .core.generator import Artifact
from .logging_config import get_logger

logger = get_logger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")


def _parse_document(text: str, source: str, prefer_json: bool) -> Any:
    """Parse YAML or JSON text, JSON first when the source says so."""
    if prefer_json:
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise SchemaLoadError(f"Invalid JSON in {source}: {e}") from e
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SchemaLoadError(f"Invalid YAML in {source}: {e}") from e


def load_schema_from_file(file_path: str | Path) -> tuple[str, Any]:
    """Load a schema document from a local YAML or JSON file.

    Args:
        file_path: Path to the schema file.

    Returns:
        Tuple of (source description, parsed document).

    Raises:
        SchemaLoadError: If the file is missing, unreadable or malformed.
    """
    file_path = Path(file_path)
    logger.debug(f"Attempting to load schema from file: {file_path}")

    if not file_path.exists():
        logger.error(f"File not found: {file_path}")
        raise SchemaLoadError(f"Schema file not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix not in YAML_SUFFIXES and suffix != ".json":
        logger.warning(f"File does not have a .yaml/.yml/.json extension: {file_path}")

    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Error reading file {file_path}: {e}", exc_info=True)
        raise SchemaLoadError(f"Error reading file {file_path}: {e}") from e

    data = _parse_document(text, str(file_path), prefer_json=suffix == ".json")
    logger.info(f"Successfully loaded schema from {file_path}")
    return str(file_path), data


def load_schema_from_url(url: str, timeout: int = 30) -> tuple[str, Any]:
    """Load a schema document from a URL.

    Args:
        url: URL to fetch the document from.
        timeout: Request timeout in seconds.

    Returns:
        Tuple of (source description, parsed document).

    Raises:
        SchemaLoadError: If URL is invalid, request fails, or the body is malformed.
    """
    logger.debug(f"Attempting to load schema from URL: {url}")

    parsed_url = urlparse(url)
    if not all([parsed_url.scheme, parsed_url.netloc]):
        logger.error(f"Invalid URL format: {url}")
        raise SchemaLoadError(f"Invalid URL: {url}")

    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.Timeout:
        logger.error(f"Request timeout for URL: {url}")
        raise SchemaLoadError(f"Request timeout for URL: {url}")
    except requests.exceptions.ConnectionError as e:
        logger.error(f"Connection error for URL {url}: {e}")
        raise SchemaLoadError(f"Connection error for URL: {url}") from e
    except requests.exceptions.HTTPError as e:
        logger.error(f"HTTP error {e.response.status_code} for URL: {url}")
        raise SchemaLoadError(
            f"HTTP error {e.response.status_code} for URL: {url}"
        ) from e
    except requests.exceptions.RequestException as e:
        logger.error(f"Request error for URL {url}: {e}", exc_info=True)
        raise SchemaLoadError(f"Request error for URL {url}: {e}") from e

    content_type = response.headers.get("content-type", "").lower()
    prefer_json = "json" in content_type or parsed_url.path.endswith(".json")
    data = _parse_document(response.text, url, prefer_json=prefer_json)
    logger.info(f"Successfully loaded schema from {url}")
    return url, data


def load_schema_document(source: str | Path, timeout: int = 30) -> tuple[str, Any]:
    """Load a schema document from a file path or an http(s) URL.

    Args:
        source: Local path or URL.
        timeout: Request timeout in seconds (only used for URLs).

    Returns:
        Tuple of (source description, parsed document).
    """
    if isinstance(source, str) and urlparse(source).scheme in ("http", "https"):
        return load_schema_from_url(source, timeout)
    return load_schema_from_file(source)


def write_artifacts(
    artifacts: Iterable[Artifact],
    output_dir: str | Path,
    force: bool = False,
) -> list[Path]:
    """Write artifacts under output_dir.

    Existing files are never overwritten unless force is set; the check runs
    before anything is written so a refused run leaves the tree untouched.

    Args:
        artifacts: Generated artifacts with relative paths.
        output_dir: Root directory for the output tree.
        force: Overwrite existing files.

    Returns:
        Paths written, in artifact order.

    Raises:
        FileExistsError: If a target exists and force is not set.
        ValueError: If an artifact path escapes output_dir.
    """
    root = Path(output_dir).resolve()
    targets = []
    for artifact in artifacts:
        target = (root / artifact.path).resolve()
        if root != target and root not in target.parents:
            raise ValueError(f"Artifact path escapes output directory: {artifact.path}")
        targets.append((artifact, target))

    if not force:
        existing = [str(target) for _, target in targets if target.exists()]
        if existing:
            raise FileExistsError(
                f"{len(existing)} file(s) already exist (use --force to overwrite): "
                + ", ".join(existing[:5])
            )

    written = []
    for artifact, target in targets:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(artifact.content, encoding="utf-8")
        logger.debug(f"Wrote {target}")
        written.append(target)

    logger.info(f"Wrote {len(written)} file(s) to {root}")
    return written
