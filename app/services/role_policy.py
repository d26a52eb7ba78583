from __future__ import annotations

import logging
from enum import Enum

from app.auth import Principal, Role
from app.errors import PermissionDenied

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    READ = 'read'
    ADJUST_STOCK = 'adjust_stock'
    EDIT_PRODUCT = 'edit_product'
    DELETE_PRODUCT = 'delete_product'
    MANAGE_PROVIDERS = 'manage_providers'
    MANAGE_USERS = 'manage_users'


_ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.MANAGER: frozenset(
        {
            Capability.READ,
            Capability.ADJUST_STOCK,
            Capability.EDIT_PRODUCT,
            Capability.DELETE_PRODUCT,
            Capability.MANAGE_PROVIDERS,
        }
    ),
    Role.BARTENDER: frozenset({Capability.READ, Capability.ADJUST_STOCK, Capability.EDIT_PRODUCT}),
    Role.GUEST: frozenset({Capability.READ}),
}


def capabilities_for(role: Role | str | None) -> frozenset[Capability]:
    return _ROLE_CAPABILITIES[Role.parse(role)]


def principal_capabilities(principal: Principal) -> frozenset[Capability]:
    if not principal.active:
        return capabilities_for(Role.GUEST)
    return capabilities_for(principal.role)


def has_capability(principal: Principal, capability: Capability) -> bool:
    return capability in principal_capabilities(principal)


def require_capability(principal: Principal, capability: Capability) -> None:
    if has_capability(principal, capability):
        return
    logger.info('permission denied actor=%s role=%s capability=%s', principal.email, principal.role.value, capability.value)
    raise PermissionDenied(f'Role {principal.role.value} cannot {capability.value.replace("_", " ")}')
