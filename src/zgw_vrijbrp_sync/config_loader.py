"""
Hierarchical configuration loader for zgw_vrijbrp_sync.

Finds YAML config files by convention, supports ``!include`` so large
mapping definitions can live in their own files, interpolates ``${VAR}``
references (header secrets, source URLs) and merges the files with
"project wins" semantics.

Usage:
    from zgw_vrijbrp_sync.config_loader import load_hierarchical_config

    config = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ZGW_SYNC_CONFIG"
PROJECT_DIR_NAME = ".zgw_sync"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` becomes the value of VAR, or ``""`` when unset.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * A ``${`` without a closing brace is left as is.
    """

    def _substitute(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        fallback = match.group(2)
        return fallback if fallback is not None else ""

    return _ENV_VAR_PATTERN.sub(_substitute, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Interpolate env vars in every string of a nested dict/list."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader subclass that understands ``!include``.

    Registering the constructor on a subclass keeps ``yaml.SafeLoader``
    itself untouched.  Each loader carries the chain of files being
    included so circular includes are reported instead of recursing.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Load the file named by ``!include path/to/file.yml``."""
    raw_path: str = loader.construct_scalar(node)

    target = Path(raw_path)
    if not target.is_absolute():
        # Relative to the including file
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    chain: list[Path] = getattr(loader, "_include_stack", [])
    if target in chain:
        cycle = " -> ".join(str(p) for p in [*chain, target])
        raise ValueError(f"Circular include detected: {cycle}")

    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(target, _include_stack=[*chain, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Parse one YAML file with ``ConfigLoader``."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config file paths, highest precedence first.

    Search order:
        1. ``ZGW_SYNC_CONFIG`` env var (explicit single path)
        2. ``.zgw_sync/config.yml`` in CWD (project-level)
        3. ``.zgw_sync/config.yaml`` in CWD (alternate extension)
        4. ``~/.config/zgw_sync/config.yml`` (XDG global)
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    project_dir = Path.cwd() / PROJECT_DIR_NAME
    candidates.append(project_dir / "config.yml")
    candidates.append(project_dir / "config.yaml")
    candidates.append(Path.home() / ".config" / "zgw_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# zgw-vrijbrp-sync configuration
#
# sources:
#   - reference: https://vrijbrp.nl/source/vrijbrp.dossiers.source.json
#     location: https://vrijbrp.example.com
#     headers:
#       Authorization: ${VRIJBRP_API_KEY}
#
# mappings:
#   - reference: https://vrijbrp.nl/mapping/zaak.to.request.mapping.json
#     mapping: !include mappings/zaak_to_request.yml
#
# schemas:
#   - reference: https://vng.opencatalogi.nl/schemas/zrc.zaak.schema.json
#     identifier_field: identificatie
#
# handlers:
#   casesToRequests:
#     strategy: push
#     beforeTimeModifier: "-10 minutes"
#     schema: https://vng.opencatalogi.nl/schemas/zrc.zaak.schema.json
#     source: https://vrijbrp.nl/source/vrijbrp.dossiers.source.json
#     mapping: https://vrijbrp.nl/mapping/zaak.to.request.mapping.json
#     caseTypePrefix: vrijbrp-
#
# sync:
#   store_path: .zgw_sync/store.json
#   max_parallel: 1
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Return the config file that is (or would be) in use.

    The highest-precedence existing file wins; with no files on disk the
    project-level default ``CWD / .zgw_sync / config.yml`` is returned.
    Nothing is created -- see ``ensure_config()``.
    """
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_DIR_NAME / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Make sure a config file exists, writing a commented starter if not.

    Args:
        target: Explicit path to create. Defaults to ``resolve_config_path()``.

    Returns:
        Path to the config file (existing or newly created).
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or resolve_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are applied from lowest to highest precedence; a top-level key
    in a higher-precedence file replaces the whole section from a lower
    one (no deep merge).  Env var interpolation runs after the merge.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
