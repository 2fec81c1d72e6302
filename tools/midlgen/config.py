"""
YAML configuration parser and validator for midlgen.

Parses an optional YAML file into a GeneratorConfig dataclass, validating
field types. Every field is optional; command-line flags override it.
"""

import shlex
import yaml
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .imports import GoImport
from .types import TypeMapper


class ValidationError(Exception):
    """Raised when a midlgen YAML file fails validation."""
    pass


@dataclass
class GeneratorConfig:
    """Parsed generator configuration."""
    package: Optional[str] = None
    base_interface: str = "IUnknown"
    gofmt: List[str] = field(default_factory=lambda: ["gofmt"])
    types: Dict[str, str] = field(default_factory=dict)
    wide_strings: List[str] = field(default_factory=list)
    packages: Dict[str, str] = field(default_factory=dict)  # qualifier -> import path

    def type_mapper(self) -> TypeMapper:
        """Build the TypeMapper this configuration describes."""
        packages = {name: GoImport(path, name) for name, path in self.packages.items()}
        return TypeMapper(extra_types=self.types,
                          wide_strings=self.wide_strings,
                          packages=packages)


def _string(data: dict, key: str) -> Optional[str]:
    if key not in data or data[key] is None:
        return None
    value = data[key]
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Field '{key}' must be a non-empty string")
    return value.strip()


def _string_map(data: dict, key: str) -> Dict[str, str]:
    if key not in data or data[key] is None:
        return {}
    section = data[key]
    if not isinstance(section, dict):
        raise ValidationError(f"Section '{key}' must be a mapping")
    result = {}
    for name, value in section.items():
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(
                f"Entry '{name}' in section '{key}' must be a non-empty string")
        result[str(name)] = value.strip()
    return result


def parse_config_yaml(yaml_str: str) -> GeneratorConfig:
    """Parse a YAML configuration string into a GeneratorConfig.

    Args:
        yaml_str: YAML string containing the configuration.

    Returns:
        GeneratorConfig with defaults for every absent field.

    Raises:
        ValidationError: If the YAML is malformed or a field has the wrong type.
    """
    if not yaml_str or not yaml_str.strip():
        raise ValidationError("Empty YAML input")

    try:
        data = yaml.safe_load(yaml_str)
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML: {e}")

    if not isinstance(data, dict):
        raise ValidationError("YAML root must be a mapping")

    config = GeneratorConfig()

    package = _string(data, "package")
    if package is not None:
        if not package.isidentifier():
            raise ValidationError(f"Package name '{package}' is not a Go identifier")
        config.package = package

    base = _string(data, "base_interface")
    if base is not None:
        config.base_interface = base

    gofmt = _string(data, "gofmt")
    if gofmt is not None:
        config.gofmt = shlex.split(gofmt)

    config.types = _string_map(data, "types")
    config.packages = _string_map(data, "packages")

    # ---- wide_strings (optional list of source type names) ----
    wide = data.get("wide_strings")
    if wide is not None:
        if not isinstance(wide, list) or not all(isinstance(w, str) for w in wide):
            raise ValidationError("Field 'wide_strings' must be a list of type names")
        config.wide_strings = list(wide)

    return config


def load_config(path: str) -> GeneratorConfig:
    """Read and parse the YAML configuration file at path."""
    with open(path) as f:
        return parse_config_yaml(f.read())
