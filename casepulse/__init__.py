"""CasePulse credential vault and Seller Central login runner."""

from typing import Any

__all__ = ["RunSupervisor", "get_config"]


def __getattr__(name: str) -> Any:
    if name == "RunSupervisor":
        from casepulse.seller_central.supervisor import RunSupervisor as _RunSupervisor

        return _RunSupervisor
    if name == "get_config":
        from casepulse.config import get_config as _get_config

        return _get_config
    raise AttributeError(name)
