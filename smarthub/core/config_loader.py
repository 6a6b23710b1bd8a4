"""Configuration loading and validation for YAML-based smarthub config files."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from smarthub.core.errors import ConfigLoadError, ConfigValidationError
from smarthub.core.model import BROADCAST_ADDRESS

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class HubConfig:
    address: int | None
    name: str
    url: str | None
    timeout_s: float
    max_cycles: int | None


@dataclass(frozen=True)
class LoadedConfig:
    config: HubConfig
    warnings: tuple[str, ...]
    sources: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("smarthub.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def user_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "smarthub/config.yaml"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _validate(doc: dict[str, Any], source: str) -> None:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def parse_address(value: str | int) -> int:
    """Parse a hexadecimal hub address such as ``"ef0"`` or ``"0x0ef0"``."""
    if isinstance(value, int):
        address = value
    else:
        try:
            address = int(value.strip(), 16)
        except ValueError as exc:
            raise ConfigValidationError(f"Hub address '{value}' is not hexadecimal") from exc
    if not 0 <= address < BROADCAST_ADDRESS:
        raise ConfigValidationError(
            f"Hub address 0x{address:X} is outside the 14-bit range 0x0000-0x3FFE"
        )
    return address


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in base.items()}
    for section, values in override.items():
        if isinstance(values, dict):
            merged.setdefault(section, {}).update(values)
        else:
            merged[section] = values
    return merged


def _build_config(doc: dict[str, Any]) -> HubConfig:
    hub = doc.get("hub", {})
    server = doc.get("server", {})
    session = doc.get("session", {})
    address = hub.get("address")
    return HubConfig(
        address=parse_address(address) if address is not None else None,
        name=hub.get("name", "SmartHub"),
        url=server.get("url"),
        timeout_s=float(server.get("timeout_s", 10.0)),
        max_cycles=session.get("max_cycles"),
    )


def load_config(
    path: Path | None = None,
    overrides: dict[str, dict[str, Any]] | None = None,
) -> LoadedConfig:
    """Load packaged defaults, then the user config, then ``path``, then ``overrides``.

    ``overrides`` uses the same section layout as the YAML file; ``None``
    values are skipped so unset CLI options do not mask file settings.
    """
    warnings: list[str] = []
    sources: list[str] = []

    default_path = resources.files("smarthub.config").joinpath("default.yaml")
    doc = _read_yaml(default_path)
    _validate(doc, "packaged defaults")
    sources.append("packaged defaults")

    user_path = user_config_path()
    if user_path.is_file():
        user_doc = _read_yaml(user_path)
        _validate(user_doc, str(user_path))
        doc = _merge(doc, user_doc)
        sources.append(str(user_path))

    if path is not None:
        if not path.is_file():
            raise ConfigLoadError(f"Config file {path} does not exist")
        explicit_doc = _read_yaml(path)
        _validate(explicit_doc, str(path))
        if str(user_path) in sources:
            warning = f"Config file {path} overrides user config {user_path}"
            LOGGER.warning(warning)
            warnings.append(warning)
        doc = _merge(doc, explicit_doc)
        sources.append(str(path))

    if overrides:
        cleaned = {
            section: {key: value for key, value in values.items() if value is not None}
            for section, values in overrides.items()
        }
        cleaned = {section: values for section, values in cleaned.items() if values}
        if cleaned:
            _validate(cleaned, "command line")
            doc = _merge(doc, cleaned)
            sources.append("command line")

    return LoadedConfig(config=_build_config(doc), warnings=tuple(warnings), sources=tuple(sources))
