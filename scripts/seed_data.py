#!/usr/bin/env python
"""
Seed data script for development and testing.

Usage:
    python scripts/seed_data.py

This script creates:
- The system groups, with admin granted membership and bless on each
- Default admin user
- Sample users and a regexp-derived group
- Sample products with group controls
- The default user preferences
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from tracker.constants import (
    CONTROLMAPMANDATORY,
    CONTROLMAPNA,
    CONTROLMAPSHOWN,
    GRANT_DIRECT,
    GROUP_BLESS,
    GROUP_MEMBERSHIP,
    SYSTEM_GROUPS,
)
from tracker.core.security import hash_password
from tracker.database import async_session_maker, init_db
from tracker.models.group import Group, GroupGroupMap, UserGroupMap
from tracker.models.product import GroupControlMap, Product
from tracker.models.user import User
from tracker.services.group import GroupService
from tracker.services.setting import SettingService
from tracker.services.user import UserService


GROUP_DESCRIPTIONS = {
    "admin": "Administrators",
    "tweakparams": "Can change Parameters",
    "editusers": "Can edit or disable users",
    "creategroups": "Can create and destroy groups",
    "editclassifications": "Can create, destroy, and edit classifications",
    "editcomponents": "Can create, destroy, and edit components",
    "editkeywords": "Can create, destroy, and edit keywords",
    "editbugs": "Can edit all bug fields",
    "canconfirm": "Can confirm a bug or mark it a duplicate",
    "bz_canusewhines": "User can configure whine reports for self",
    "bz_sudoers": "Can perform actions as other users",
    "bz_can_disable_mfa": "Can disable two-factor authentication of other users",
}

USERS = [
    {
        "login_name": "admin@example.com",
        "realname": "Site Administrator",
        "password": "AdminPass123!",
        "groups": ["admin"],
    },
    {
        "login_name": "triager@example.com",
        "realname": "Tracy Triager",
        "password": "TriagePass123!",
        "groups": ["editbugs", "canconfirm"],
    },
    {
        "login_name": "dev1@staff.example.com",
        "realname": "Dana Developer",
        "password": "DevPass123!",
        "groups": [],
    },
    {
        "login_name": "reporter@example.org",
        "realname": "",
        "password": "ReporterPass123!",
        "groups": [],
    },
]

# Non-system groups
GROUPS = [
    {
        "name": "staff",
        "description": "Everyone with a staff address",
        "userregexp": r"@staff\.example\.com$",
        "isbuggroup": True,
    },
    {
        "name": "security",
        "description": "Security sensitive bugs",
        "userregexp": "",
        "isbuggroup": True,
    },
]

PRODUCTS = [
    {
        "name": "Tracker",
        "description": "The issue tracker itself.",
        "controls": [],
    },
    {
        "name": "Internal Tools",
        "description": "Tools only staff may see.",
        "controls": [
            {"group": "staff", "entry": True, "membercontrol": CONTROLMAPMANDATORY,
             "othercontrol": CONTROLMAPMANDATORY, "canedit": False},
        ],
    },
    {
        "name": "Website",
        "description": "Public website; security bugs are restricted.",
        "controls": [
            {"group": "security", "entry": False, "membercontrol": CONTROLMAPSHOWN,
             "othercontrol": CONTROLMAPNA, "canedit": False, "editbugs": True},
        ],
    },
]


async def seed_database():
    """Seed the database with sample data."""
    print("Initializing database...")
    await init_db()

    async with async_session_maker() as session:
        # Check if data already exists
        result = await session.execute(select(User).limit(1))
        if result.scalar_one_or_none():
            print("Database already seeded. Skipping...")
            return

        print("Creating groups...")
        groups = {}
        for name in SYSTEM_GROUPS:
            group = Group(name=name, description=GROUP_DESCRIPTIONS[name], isbuggroup=False)
            session.add(group)
            groups[name] = group
        for group_data in GROUPS:
            group = Group(**group_data)
            session.add(group)
            groups[group.name] = group

        await session.flush()

        # admin members are members of, and may bless, every group
        admin = groups["admin"]
        for group in groups.values():
            if group.id == admin.id:
                session.add(
                    GroupGroupMap(member_id=admin.id, grantor_id=admin.id, grant_type=GROUP_BLESS)
                )
                continue
            for grant_type in (GROUP_MEMBERSHIP, GROUP_BLESS):
                session.add(
                    GroupGroupMap(member_id=admin.id, grantor_id=group.id, grant_type=grant_type)
                )

        print("Creating users...")
        users = {}
        for user_data in USERS:
            user = User(
                login_name=user_data["login_name"],
                realname=user_data["realname"],
                cryptpassword=hash_password(user_data["password"]),
            )
            session.add(user)
            users[user.login_name] = (user, user_data["groups"])

        await session.flush()

        for user, group_names in users.values():
            for name in group_names:
                session.add(
                    UserGroupMap(
                        user_id=user.id,
                        group_id=groups[name].id,
                        isbless=False,
                        grant_type=GRANT_DIRECT,
                    )
                )

        print("Creating products...")
        for product_data in PRODUCTS:
            product = Product(name=product_data["name"], description=product_data["description"])
            session.add(product)
            await session.flush()
            for control in product_data["controls"]:
                control = dict(control)
                group = groups[control.pop("group")]
                session.add(GroupControlMap(group_id=group.id, product_id=product.id, **control))

        await session.commit()

    # Regexp memberships and mail settings go through the service layer.
    async with async_session_maker() as session:
        user_service = UserService(session)
        group_service = GroupService(session)
        await SettingService(session).install_defaults()
        for login in users:
            user = await user_service.get_by_login(login)
            await user_service.create_default_email_settings(user)
        for group_data in GROUPS:
            if group_data["userregexp"]:
                await group_service.rederive_regexp(await group_service.get_by_name(group_data["name"]))
        await session.commit()

    print("\n" + "=" * 50)
    print("Database seeded successfully!")
    print("=" * 50)
    print("\nCreated:")
    print(f"  - {len(SYSTEM_GROUPS) + len(GROUPS)} groups")
    print(f"  - {len(USERS)} users")
    print(f"  - {len(PRODUCTS)} products")
    print("\nDefault credentials:")
    print("  Admin:    admin@example.com / AdminPass123!")
    print("  Triager:  triager@example.com / TriagePass123!")
    print("  Developer: dev1@staff.example.com / DevPass123!")


if __name__ == "__main__":
    asyncio.run(seed_database())
