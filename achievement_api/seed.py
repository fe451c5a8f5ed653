# achievement_api/seed.py
"""
Create tables, roles and permissions, and optionally a first admin account.

    python -m achievement_api.seed --admin-username admin --admin-password ...

Safe to run repeatedly.
"""
import argparse
import asyncio
import logging
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from achievement_api.core.database import SessionLocal, engine, init_models
from achievement_api.core.log import configure_logging
from achievement_api.core.security import get_password_hash
from achievement_api.models.user import Permission, Role, User
from achievement_api.services.authorization import ALL_PERMISSIONS, DEFAULT_ROLE_PERMISSIONS, RoleName

logger = logging.getLogger(__name__)

ROLE_DESCRIPTIONS = {
    RoleName.STUDENT: "Records and submits achievements",
    RoleName.ADVISOR: "Verifies achievements of advised students",
    RoleName.ADMIN: "Manages users and may act on any achievement",
}


async def seed_roles(session: AsyncSession) -> Dict[str, Role]:
    existing = {p.name: p for p in (await session.scalars(select(Permission))).all()}
    for name in ALL_PERMISSIONS:
        if name not in existing:
            resource, action = name.split(":", 1)
            permission = Permission(name=name, resource=resource, action=action)
            session.add(permission)
            existing[name] = permission

    roles = {r.name: r for r in (await session.scalars(select(Role))).all()}
    for role_name, permission_names in DEFAULT_ROLE_PERMISSIONS.items():
        role = roles.get(role_name.value)
        if role is None:
            role = Role(name=role_name.value, description=ROLE_DESCRIPTIONS[role_name], permissions=[])
            session.add(role)
            roles[role_name.value] = role
        granted = {p.name for p in role.permissions}
        for name in permission_names:
            if name not in granted:
                role.permissions.append(existing[name])

    await session.commit()
    logger.info("seeded %d permissions and %d roles", len(existing), len(roles))
    return roles


async def seed_admin(
    session: AsyncSession,
    roles: Dict[str, Role],
    username: str,
    password: str,
    email: Optional[str] = None,
) -> User:
    user = await session.scalar(select(User).where(User.username == username))
    if user is not None:
        logger.info("admin %s already exists", username)
        return user
    user = User(
        username=username,
        email=email or f"{username}@localhost",
        password_hash=get_password_hash(password),
        full_name="Administrator",
        role_id=roles[RoleName.ADMIN.value].id,
        is_active=True,
    )
    session.add(user)
    await session.commit()
    logger.info("admin %s created", username)
    return user


async def run(args: argparse.Namespace) -> None:
    await init_models()
    async with SessionLocal() as session:
        roles = await seed_roles(session)
        if args.admin_username and args.admin_password:
            await seed_admin(session, roles, args.admin_username, args.admin_password, args.admin_email)
    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed roles, permissions and an admin account")
    parser.add_argument("--admin-username")
    parser.add_argument("--admin-password")
    parser.add_argument("--admin-email")
    configure_logging()
    asyncio.run(run(parser.parse_args()))


if __name__ == "__main__":
    main()
