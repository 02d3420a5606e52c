"""YAML configuration loading."""

from gcpotel.sdk.config.load import load_config

__all__ = ["load_config"]
