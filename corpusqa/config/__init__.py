"""Configuration module for corpusqa."""

from corpusqa.config.loader import load_config, get_config_path, save_config
from corpusqa.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path", "save_config"]
