"""Shared utility functions."""

from .logging import setup_logging, get_logger
from .env import load_env, get_env, parse_bool

__all__ = ["setup_logging", "get_logger", "load_env", "get_env", "parse_bool"]
