"""Configuration commands for club-data CLI."""

from cyclopts import App

from club_data.config import DEFAULTS, ENV_FALLBACKS, get_config

config_app = App(name="config", help="Manage configuration")

# Settings read by club-data, with the type their value must parse as.
KNOWN_KEYS: dict[str, type] = {
    "dynamodb.table": str,
    "dynamodb.region": str,
    "dynamodb.endpoint": str,
    "dynamodb.timeout": float,
    "dynamodb.max_attempts": int,
    "assign.max_candidates": int,
    "assign.max_rounds": int,
    "user.id": str,
}


def _check(key: str, value: str) -> None:
    expected = KNOWN_KEYS.get(key)
    if expected is None:
        raise ValueError(f"Unknown setting {key}. Known settings: {', '.join(KNOWN_KEYS)}")
    try:
        expected(value)
    except ValueError as e:
        raise ValueError(f"{key} expects a {expected.__name__}, got {value!r}") from e


@config_app.command
def set(key: str, value: str, global_: bool = False) -> None:
    """Set a configuration setting.

    Args:
        key: Configuration key (see ``config show``)
        value: Configuration value
        global_: If True, set in global config. If False, set in local config.
    """
    _check(key, value)
    config = get_config(use_global=global_)
    config.set(key, value)
    scope = "global" if global_ else "local"
    print(f"Set {key} = {value} ({scope})")


@config_app.command
def unset(key: str, global_: bool = False) -> None:
    """Unset a configuration setting.

    Args:
        key: Configuration key
        global_: If True, unset from global config. If False, unset from local config.
    """
    config = get_config(use_global=global_)
    config.unset(key)
    scope = "global" if global_ else "local"
    print(f"Unset {key} ({scope})")


@config_app.command
def get(key: str, global_: bool = False) -> None:
    """Get the effective value of a setting (files, then environment, then default).

    Args:
        key: Configuration key
        global_: If True, skip local config.
    """
    value = get_config(use_global=global_).get(key)
    if value is None:
        print(f"{key} is not set")
    else:
        print(f"{key} = {value}")


@config_app.command(name="list")
def list_config(global_: bool = False) -> None:
    """List settings stored in config files.

    Args:
        global_: If True, list global config only. If False, list merged config.
    """
    settings = get_config(use_global=global_).list()

    if not settings:
        scope = "global" if global_ else "local"
        print(f"No {scope} configuration settings")
        return

    scope = "Global" if global_ else "Configuration"
    print(f"{scope} settings:\n")
    for key, value in settings.items():
        print(f"{key} = {value}")


@config_app.command
def show() -> None:
    """Show every known setting with its effective value."""
    config = get_config()
    stored = config.list()
    for key in KNOWN_KEYS:
        value = config.get(key)
        if key in stored:
            origin = "config"
        elif key in ENV_FALLBACKS and value is not None and value != DEFAULTS.get(key):
            origin = f"env {ENV_FALLBACKS[key]}"
        elif value is not None:
            origin = "default"
        else:
            origin = "unset"
        print(f"{key} = {'' if value is None else value}  ({origin})")
