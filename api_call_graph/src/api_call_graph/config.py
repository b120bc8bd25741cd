"""Run configuration, from environment variables with CLI overrides."""

import os
from dataclasses import dataclass, field

from api_call_graph.call_edges import DEFAULT_EXCLUDED_PREFIXES

ENV_PREFIX = "API_CALL_GRAPH_"


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(ENV_PREFIX + name, str(default)).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None:
        return default
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass
class AnalysisConfig:
    """Settings for one analysis run."""

    classes_dir: str
    output_dir: str = "./output"
    extract_method_bodies: bool = True
    filter_generated_methods: bool = True  # drop generated accessors from body bundles
    excluded_prefixes: tuple[str, ...] = field(default=DEFAULT_EXCLUDED_PREFIXES)
    log_level: str = "WARNING"


def get_config(classes_dir: str, **overrides) -> AnalysisConfig:
    """
    Builds the config from API_CALL_GRAPH_* environment variables; keyword
    arguments that are not None win over the environment.
    """
    config = AnalysisConfig(
        classes_dir=classes_dir,
        output_dir=os.getenv(ENV_PREFIX + "OUTPUT_DIR", "./output"),
        extract_method_bodies=_env_flag("EXTRACT_BODIES", True),
        filter_generated_methods=_env_flag("FILTER_METHODS", True),
        excluded_prefixes=_env_list("EXCLUDED_PREFIXES", DEFAULT_EXCLUDED_PREFIXES),
        log_level=os.getenv(ENV_PREFIX + "LOG_LEVEL", "WARNING").upper(),
    )
    for key, value in overrides.items():
        if not hasattr(config, key):
            raise TypeError(f"unknown config option {key!r}")
        if value is not None:
            setattr(config, key, value)
    return config
