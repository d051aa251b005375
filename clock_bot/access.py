from __future__ import annotations

from typing import Iterable

from .config import Config
from .errors import NotAuthorized


def is_privileged(user_id: str, role_names: Iterable[str], config: Config) -> bool:
    """Static allow-list check; changes need a restart."""
    if str(user_id) in config.privileged_user_ids:
        return True
    return any(name in config.privileged_roles for name in role_names)


def require_privileged(user_id: str, role_names: Iterable[str], config: Config) -> None:
    if not is_privileged(user_id, role_names, config):
        raise NotAuthorized()
