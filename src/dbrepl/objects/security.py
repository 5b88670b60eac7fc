"""Handlers for security principals and row-level security policies."""

from dbrepl.config.schema import ObjectKind, SpecialHandling
from dbrepl.objects.base import ObjectHandler
from dbrepl.objects.registry import KindRegistry


@KindRegistry.register(ObjectKind.ROLE)
class RoleHandler(ObjectHandler):
    """Handler for database roles."""

    kind = ObjectKind.ROLE
    folder = "01_Security/01_Roles"
    label = "Roles"
    owned = False


@KindRegistry.register(ObjectKind.USER)
class UserHandler(ObjectHandler):
    """Handler for database users."""

    kind = ObjectKind.USER
    folder = "01_Security/02_Users"
    label = "Users"
    owned = False


@KindRegistry.register(ObjectKind.SECURITY_POLICY)
class SecurityPolicyHandler(ObjectHandler):
    """
    Handler for row-level security policies.

    Policies reference predicate functions, so on import they run only
    after every retry-eligible programmability script has finished.
    """

    kind = ObjectKind.SECURITY_POLICY
    folder = "19_SecurityPolicies"
    label = "SecurityPolicies"
    file_suffix = ".securitypolicy"
    timestamped = True
    special_handling = SpecialHandling.SECURITY_POLICY
