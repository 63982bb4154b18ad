"""Environment-driven configuration helpers."""

from .loader import get_bool_env, get_float_env, get_int_env, get_str_env

__all__ = ["get_bool_env", "get_float_env", "get_int_env", "get_str_env"]
