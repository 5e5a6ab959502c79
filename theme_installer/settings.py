"""
Initializes the Dynaconf settings object for the theme installer.
This module is the single source of truth for all configuration.
"""

from pathlib import Path
from dynaconf import Dynaconf

PROJECT_ROOT = Path(__file__).parent.parent

SETTINGS_FILES = ["config/settings.toml"]
SECRETS_FILE = "config/.secrets.toml"
ENVVAR_PREFIX = "THEMES"


def load_settings(**overrides) -> Dynaconf:
    """Build a settings object; keyword overrides win over files and env."""
    settings = Dynaconf(
        root_path=PROJECT_ROOT,
        settings_files=SETTINGS_FILES,
        secrets=SECRETS_FILE,
        envvar_prefix=ENVVAR_PREFIX,
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )
    for key, value in overrides.items():
        settings.set(key, value)
    return settings
