"""
Configuration for module preservation runs.

Supports YAML and JSON config files; CLI arguments override file values.

Example YAML:

    min_module_size: 5
    unassigned_label: grey
    network:
      network_type: signed
      power: 12
      correlation_method: pearson
    permutation:
      n_permutations: 250
      seed: 12345
      n_workers: 4
    summary:
      policy: standard
      na_policy: strict
"""

from __future__ import annotations

import json
from argparse import Namespace
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from modpres.core.errors import ConfigurationError
from modpres.stats.adjacency import NETWORK_TYPES, AdjacencyTransform
from modpres.stats.scoring import SUMMARY_POLICIES, SummaryPolicy

__all__ = [
    'NetworkConfig',
    'PermutationConfig',
    'SummaryConfig',
    'PreservationConfig',
    'load_config',
    'config_from_dict',
    'merge_cli_overrides',
]


@dataclass
class NetworkConfig:
    """Network construction settings; must match how modules were detected."""
    network_type: str = "unsigned"
    power: Optional[float] = None
    correlation_method: str = "pearson"


@dataclass
class PermutationConfig:
    """Permutation null settings."""
    n_permutations: int = 250
    seed: int = 12345
    n_workers: int = 1
    batch_size: int = 25
    min_permutations: int = 10
    recommended_permutations: int = 100


@dataclass
class SummaryConfig:
    """Summary Z composition."""
    policy: str = "standard"
    na_policy: str = "strict"


@dataclass
class PreservationConfig:
    """
    Complete configuration of a preservation run.

    The defaults reproduce the documented conventions: unsigned network
    with power 6, 250 permutations, minimum module size 5, "grey" as the
    unassigned label and the "standard" summary (mean of density,
    connectivity and separability Z).
    """
    min_module_size: int = 5
    unassigned_label: str = "grey"
    show_progress: bool = False
    network: NetworkConfig = field(default_factory=NetworkConfig)
    permutation: PermutationConfig = field(default_factory=PermutationConfig)
    summary: SummaryConfig = field(default_factory=SummaryConfig)

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If any setting is out of range
        """
        if self.min_module_size < 2:
            raise ConfigurationError(f"min_module_size must be >= 2, got {self.min_module_size}")
        if not self.unassigned_label:
            raise ConfigurationError("unassigned_label must be a non-empty string")

        net = self.network
        if net.network_type.replace("_", " ").lower() not in NETWORK_TYPES:
            raise ConfigurationError(
                f"Invalid network type '{net.network_type}'. Choose from: {', '.join(NETWORK_TYPES)}"
            )
        if net.power is not None and net.power <= 0:
            raise ConfigurationError(f"power must be positive, got {net.power}")
        if net.correlation_method not in ("pearson", "spearman"):
            raise ConfigurationError(
                f"Invalid correlation method '{net.correlation_method}'. Choose from: pearson, spearman"
            )

        perm = self.permutation
        if perm.min_permutations < 1:
            raise ConfigurationError(f"min_permutations must be >= 1, got {perm.min_permutations}")
        if perm.n_permutations < perm.min_permutations:
            raise ConfigurationError(
                f"n_permutations={perm.n_permutations} is below the minimum of {perm.min_permutations}"
            )
        if perm.seed is None or perm.seed < 0:
            raise ConfigurationError(f"seed must be a non-negative integer, got {perm.seed}")
        if perm.n_workers < 1:
            raise ConfigurationError(f"n_workers must be >= 1, got {perm.n_workers}")
        if perm.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {perm.batch_size}")

        if self.summary.policy not in SUMMARY_POLICIES:
            raise ConfigurationError(
                f"Invalid summary policy '{self.summary.policy}'. "
                f"Choose from: {', '.join(sorted(SUMMARY_POLICIES))}"
            )
        if self.summary.na_policy not in ("strict", "available"):
            raise ConfigurationError(
                f"Invalid na_policy '{self.summary.na_policy}'. Choose from: strict, available"
            )

    def adjacency(self) -> AdjacencyTransform:
        return AdjacencyTransform.from_name(self.network.network_type, self.network.power)

    def summary_policy(self) -> SummaryPolicy:
        return SummaryPolicy.from_name(self.summary.policy, self.summary.na_policy)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_SECTIONS = {
    'network': NetworkConfig,
    'permutation': PermutationConfig,
    'summary': SummaryConfig,
}


def _build_section(cls, values: Any, section: str):
    if values is None:
        return cls()
    if not isinstance(values, dict):
        raise ConfigurationError(f"Config section '{section}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown keys in config section '{section}': {unknown}. Known: {sorted(known)}"
        )
    return cls(**values)


def config_from_dict(config: Dict[str, Any]) -> PreservationConfig:
    """
    Build and validate a PreservationConfig from a nested mapping.

    Raises:
        ConfigurationError: On unknown keys or invalid values
    """
    known_top = {f.name for f in fields(PreservationConfig)}
    unknown = sorted(set(config) - known_top)
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {unknown}. Known: {sorted(known_top)}")

    top = {k: v for k, v in config.items() if k not in _SECTIONS}
    sections = {
        name: _build_section(cls, config.get(name), name)
        for name, cls in _SECTIONS.items()
    }
    result = PreservationConfig(**top, **sections)
    result.validate()
    return result


def load_config(config_path: Path) -> PreservationConfig:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigurationError: If file format is unsupported or invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    try:
        with open(config_path, 'r') as f:
            if suffix in ('.yaml', '.yml'):
                raw = yaml.safe_load(f)
            elif suffix == '.json':
                raw = json.load(f)
            else:
                raise ConfigurationError(
                    f"Unsupported config format: {suffix}. Use .yaml, .yml, or .json"
                )
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in config file: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError("Config file must contain a mapping at top level")

    return config_from_dict(raw)


# CLI argument name → (section or None, field)
_CLI_FIELDS = {
    'min_module_size': (None, 'min_module_size'),
    'unassigned_label': (None, 'unassigned_label'),
    'network_type': ('network', 'network_type'),
    'power': ('network', 'power'),
    'correlation_method': ('network', 'correlation_method'),
    'n_permutations': ('permutation', 'n_permutations'),
    'seed': ('permutation', 'seed'),
    'workers': ('permutation', 'n_workers'),
    'summary_policy': ('summary', 'policy'),
    'na_policy': ('summary', 'na_policy'),
}


def merge_cli_overrides(config: PreservationConfig, args: Namespace) -> PreservationConfig:
    """
    Apply explicitly provided CLI arguments on top of a config.

    Priority (highest to lowest):
    1. CLI arguments that are not None
    2. Config file values
    3. Dataclass defaults
    """
    updates: Dict[str, Any] = {}
    section_updates: Dict[str, Dict[str, Any]] = {}

    for arg_name, (section, field_name) in _CLI_FIELDS.items():
        value = getattr(args, arg_name, None)
        if value is None:
            continue
        if section is None:
            updates[field_name] = value
        else:
            section_updates.setdefault(section, {})[field_name] = value

    if getattr(args, 'progress', False):
        updates['show_progress'] = True

    for section, values in section_updates.items():
        updates[section] = replace(getattr(config, section), **values)

    merged = replace(config, **updates)
    merged.validate()
    return merged
