# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""HTTP surface of the orchestration service.

The service wiring is imported lazily so that importing a store or router
module does not construct the orchestration components. The FastAPI
application lives in :mod:`src.server.app`.
"""

from importlib import import_module
from typing import TYPE_CHECKING

_LAZY_EXPORTS = {
    "Services": ".dependencies",
    "build_services": ".dependencies",
    "get_services": ".dependencies",
}

__all__ = sorted(_LAZY_EXPORTS)

if TYPE_CHECKING:  # pragma: no cover
    from .dependencies import Services, build_services, get_services


def __getattr__(name: str):
    module_name = _LAZY_EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(import_module(module_name, __name__), name)
