"""
YAML configuration files for tracker_sync.

Config files are optional.  When present they only supply fallback values;
environment variables and CLI flags always win (see ``config.load_config``).

Files, lowest precedence first:

    ~/.config/tracker_sync/config.yml      global, per user
    .tracker_sync/config.yml (or .yaml)    project, in the working directory
    $TRACKER_SYNC_CONFIG                   explicit path

Each file may pull in others with ``!include`` (paths relative to the
including file) and reference environment variables as ``${VAR}`` or
``${VAR:-default}``.  Top-level sections from a higher-precedence file
replace the same section from a lower one; they are not deep-merged, so a
project ``sync:`` section never inherits half of a global one.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TRACKER_SYNC_CONFIG"
PROJECT_DIR = ".tracker_sync"
GLOBAL_DIR = Path(".config") / "tracker_sync"

# ---------------------------------------------------------------------------
# ${VAR} interpolation
# ---------------------------------------------------------------------------

_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+?)(?::-(?P<default>.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    there is none.  A ``${`` without a closing brace is kept literally.
    """

    def _expand(match: re.Match) -> str:
        return os.environ.get(match["name"]) or match["default"] or ""

    return _ENV_REF.sub(_expand, value)


def _interpolate_recursive(obj: Any) -> Any:
    match obj:
        case str():
            return interpolate_env_vars(obj)
        case dict():
            return {key: _interpolate_recursive(val) for key, val in obj.items()}
        case list():
            return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader that understands ``!include``.

    Registered on this subclass only, so ``yaml.safe_load`` elsewhere still
    rejects the tag.  ``chain`` holds the files being loaded, outermost
    first, for cycle detection.
    """

    def __init__(self, stream, chain: tuple[Path, ...]) -> None:
        super().__init__(stream)
        self.chain = chain

    def include(self, node: yaml.ScalarNode) -> Any:
        including = self.chain[-1]
        target = Path(self.construct_scalar(node)).expanduser()
        if not target.is_absolute():
            target = including.parent / target
        target = target.resolve()

        if target in self.chain:
            cycle = " -> ".join(str(p) for p in (*self.chain, target))
            raise ValueError(f"Circular include detected: {cycle}")
        if not target.is_file():
            raise FileNotFoundError(
                f"Include file not found: {target} (referenced from {including})"
            )
        return _load_yaml_with_includes(target, _chain=self.chain)


ConfigLoader.add_constructor("!include", ConfigLoader.include)


def _load_yaml_with_includes(
    path: Path, *, _chain: tuple[Path, ...] = ()
) -> Any:
    """Parse one YAML file, following ``!include`` directives."""
    path = Path(path).resolve()
    with path.open(encoding="utf-8") as fh:
        loader = ConfigLoader(fh, (*_chain, path))
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery and merge
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return the config files that exist, highest precedence first."""
    candidates: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    project = Path.cwd() / PROJECT_DIR
    candidates += [project / "config.yml", project / "config.yaml"]
    candidates.append(Path.home() / GLOBAL_DIR / "config.yml")
    return [path for path in candidates if path.exists()]


def load_hierarchical_config() -> dict[str, Any]:
    """Merge every discovered config file into one raw dict.

    Returns ``{}`` when no file exists.  YAML errors propagate; a file whose
    root is not a mapping is skipped with a warning.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        logger.debug("Loading config file %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error("Cannot load config file %s: %s", path, e)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Skipping config file %s: non-dict root (%s)",
                path,
                type(data).__name__,
            )

    if not merged:
        logger.debug("No config file values, using defaults")
    return _interpolate_recursive(merged)
