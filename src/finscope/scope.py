# ABOUTME: Resolves the current user's tenant (company) and access level
# ABOUTME: Every store call downstream is made with the tenant resolved here

import logging

from finscope.exceptions import NoTenantAssociationError
from finscope.store import EntityStore
from finscope.types import AccessLevel, Scope

logger = logging.getLogger(__name__)


async def resolve(store: EntityStore, user_id: str) -> Scope:
    """
    Resolve a user's tenant and access level.

    The company owner gets `owner`; any other profile linked to the
    company gets `member`.

    Args:
        store: Entity store bound to an authenticated session
        user_id: Authenticated user id

    Returns:
        Resolved Scope

    Raises:
        NoTenantAssociationError: if the user has no profile or no linked company
    """
    profile = await store.fetch_profile(user_id)
    if profile is None or not profile.tenant_id:
        logger.warning(f"User {user_id} has no company association")
        raise NoTenantAssociationError(
            "Usuário não está associado a nenhuma empresa. "
            "Entre em contato com o administrador."
        )
    if not profile.active:
        raise NoTenantAssociationError("Usuário desativado. Entre em contato com o administrador.")

    tenant = await store.fetch_tenant(profile.tenant_id)
    if tenant is None:
        raise NoTenantAssociationError(
            f"Empresa {profile.tenant_id} não encontrada para o usuário."
        )

    level = AccessLevel.OWNER if tenant.owner_id == user_id else AccessLevel.MEMBER
    logger.info(f"Resolved user {user_id} to tenant {tenant.id} ({level.value})")
    return Scope(user_id=user_id, tenant_id=tenant.id, access_level=level)


def restricted(user_id: str) -> Scope:
    """The scope of a user without a company: every query yields nothing."""
    return Scope(user_id=user_id)
