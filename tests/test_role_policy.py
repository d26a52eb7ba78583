from __future__ import annotations

import unittest

from app.auth import Principal, Role
from app.errors import PermissionDenied
from app.services.role_policy import (
    Capability,
    capabilities_for,
    has_capability,
    principal_capabilities,
    require_capability,
)


def _principal(role: Role, *, active: bool = True) -> Principal:
    return Principal(email=f'{role.value}@bar.example', display_name=role.value, role=role, active=active)


class RolePolicyTests(unittest.TestCase):
    def test_admin_has_every_capability(self) -> None:
        self.assertEqual(capabilities_for(Role.ADMIN), frozenset(Capability))

    def test_manager_cannot_manage_users(self) -> None:
        caps = capabilities_for(Role.MANAGER)
        self.assertIn(Capability.DELETE_PRODUCT, caps)
        self.assertIn(Capability.MANAGE_PROVIDERS, caps)
        self.assertNotIn(Capability.MANAGE_USERS, caps)

    def test_bartender_adjusts_and_edits_but_never_deletes(self) -> None:
        caps = capabilities_for(Role.BARTENDER)
        self.assertEqual(caps, frozenset({Capability.READ, Capability.ADJUST_STOCK, Capability.EDIT_PRODUCT}))

    def test_guest_is_read_only(self) -> None:
        self.assertEqual(capabilities_for(Role.GUEST), frozenset({Capability.READ}))

    def test_unknown_role_string_falls_back_to_guest(self) -> None:
        self.assertEqual(capabilities_for('sommelier'), capabilities_for(Role.GUEST))
        self.assertEqual(capabilities_for(None), capabilities_for(Role.GUEST))
        self.assertEqual(capabilities_for(' Admin '), capabilities_for(Role.ADMIN))

    def test_inactive_principal_is_reduced_to_guest(self) -> None:
        principal = _principal(Role.ADMIN, active=False)
        self.assertEqual(principal_capabilities(principal), frozenset({Capability.READ}))
        self.assertFalse(has_capability(principal, Capability.ADJUST_STOCK))

    def test_require_capability_raises_permission_denied(self) -> None:
        with self.assertRaises(PermissionDenied) as ctx:
            require_capability(_principal(Role.GUEST), Capability.ADJUST_STOCK)
        self.assertEqual(ctx.exception.status_code, 403)
        require_capability(_principal(Role.BARTENDER), Capability.ADJUST_STOCK)


if __name__ == '__main__':
    unittest.main()
