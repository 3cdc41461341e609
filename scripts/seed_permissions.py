"""
Seed script to populate the permission catalog and default roles.

Run this script after database initialization to create:
- The action codes (C, V, VO, E, EO, D, DO)
- The protected modules
- Default roles and their permission matrices
- An administrator user holding the Super Admin role

Usage:
    python -m scripts.seed_permissions
"""
import asyncio
import os
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db, init_db
from app.features.permission_matrix.service import MatrixEditor
from app.features.permissions.catalog import PermissionCatalog, seed_catalog
from app.features.roles.models import Role
from app.features.users.auth import create_access_token
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

ADMIN_EMAIL = os.environ.get("SEED_ADMIN_EMAIL", "admin@example.com")

ALL = "ALL"

DEFAULT_ROLES = {
    "Super Admin": {
        "description": "Every action on every module",
        "permissions": ALL,
    },
    "Read Only": {
        "description": "View access to every module",
        "permissions": "V",
    },
}


async def build_matrix(db: AsyncSession, codes: str) -> dict[str, str]:
    """{module: csv} for every catalog module, with all codes or the given ones."""
    catalog = PermissionCatalog(db)
    if codes == ALL:
        codes = ",".join(action.code for action in await catalog.actions())
    return {resource.name: codes for resource in await catalog.resources()}


async def seed_roles(db: AsyncSession) -> dict[str, Role]:
    """
    Create default roles that do not exist yet and fill their matrices.

    Existing roles are left as they are.
    """
    log.info("Creating default roles...")
    roles = {}
    editor = MatrixEditor(db)

    for role_name, role_config in DEFAULT_ROLES.items():
        result = await db.execute(select(Role).where(Role.name == role_name))
        existing = result.scalars().first()

        if existing:
            log.debug("Role %r already exists, skipping", role_name)
            roles[role_name] = existing
            continue

        role = Role(name=role_name, description=role_config["description"])
        db.add(role)
        await db.flush()

        matrix = await build_matrix(db, role_config["permissions"])
        update = await editor.replace_role_permissions(role.id, matrix, acting_user_id=None)
        log.info("Created role %r with %d grants", role_name, len(update.added))
        roles[role_name] = role

    return roles


async def seed_admin(db: AsyncSession, role: Role) -> User:
    result = await db.execute(select(User).where(User.email == ADMIN_EMAIL))
    user = result.scalars().first()
    if user is None:
        user = User(email=ADMIN_EMAIL, name="Administrator", role_id=role.id)
        db.add(user)
        await db.commit()
        log.info("Created admin user %s", ADMIN_EMAIL)
    return user


async def main():
    """Main function to seed the catalog, roles and the admin user."""
    log.info("Starting permission seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # Get database session
    async for db in get_db():
        try:
            actions_added, resources_added = await seed_catalog(db)
            await db.commit()
            log.info("Catalog: %d actions and %d modules added", actions_added, resources_added)

            roles = await seed_roles(db)
            admin = await seed_admin(db, roles["Super Admin"])

            log.info("Permission seeding completed successfully!")
            log.info("Access token for %s:", admin.email)
            log.info(create_access_token(admin.id, admin.email, admin.role_id))

        except Exception as e:
            log.error("Error seeding permissions: %s", e, exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
