"""
Settings management.

settings.json holds non-secret values only. The client secret and the blob SAS
token are read from the environment or prompted for, never stored on disk.
"""

import os
import sys
import json
import logging
from pathlib import Path
from typing import Dict, List, Any

logger = logging.getLogger(__name__)

SECRET_ENV_VAR = 'SPO_CLIENT_SECRET'
SAS_ENV_VAR = 'SPO_BLOB_SAS_TOKEN'
SECRET_KEYS = ('client_secret', 'client_secret_value', 'sas_token')

DEFAULTS: Dict[str, Any] = {
    'tenant_name': None,
    'tenant_id': None,
    'client_id': None,
    'output_root': None,
    'include_personal_sites': False,
    'max_retries': 1,
    'blob_container_url': None,
}


def _get_settings_search_paths() -> List[Path]:
    """Get list of paths to search for settings.json."""
    paths = []

    # If running as frozen exe
    if getattr(sys, 'frozen', False):
        paths.append(Path(sys.executable).parent / 'settings.json')

    paths.append(Path.cwd() / 'settings.json')

    package_dir = Path(__file__).parent
    paths.append(package_dir / 'settings.json')
    paths.append(package_dir.parent / 'settings.json')

    return paths


def get_settings_path() -> Path:
    """Return the first existing settings.json, or the cwd default."""
    for path in _get_settings_search_paths():
        if path.exists():
            logger.info(f"Found settings at: {path}")
            return path
    return Path.cwd() / 'settings.json'


def load_settings(settings_path: Path = None) -> Dict[str, Any]:
    """Load settings from JSON file, merged over DEFAULTS. Never loads secrets."""
    settings = dict(DEFAULTS)
    if settings_path is None:
        settings_path = get_settings_path()

    if not settings_path.exists():
        logger.info("No settings.json found - will use defaults")
        return settings

    try:
        with open(settings_path, 'r', encoding='utf-8') as f:
            raw_settings = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not load settings.json: {e}")
        return settings

    if not isinstance(raw_settings, dict):
        logger.warning(f"Ignoring settings.json: expected an object, got {type(raw_settings).__name__}")
        return settings

    for key in SECRET_KEYS:
        if key in raw_settings:
            logger.warning(f"Ignoring '{key}' in {settings_path} - secrets are never read from disk")
            del raw_settings[key]

    settings.update(raw_settings)
    logger.info(f"Loaded settings from: {settings_path}")
    return settings


def secret_from_env(name: str) -> str:
    return os.environ.get(name, '').strip()
