# scripts/seed.py

import os
import sys
import argparse
from typing import Dict, Optional

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, select

# Ensure root path for relative imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# ✅ Load environment variables before settings are read
load_dotenv()

from core.database import engine as default_engine  # noqa: E402
from core.security import create_token_for_user  # noqa: E402
from models.models import Project, User, UserRole, Workspace  # noqa: E402


def _get_or_create_workspace(session: Session, name: str) -> Workspace:
    workspace = session.exec(select(Workspace).where(Workspace.name == name)).first()
    if not workspace:
        workspace = Workspace(name=name)
        session.add(workspace)
        session.commit()
        session.refresh(workspace)
        print(f"✅ Created workspace {name}")
    return workspace


def _get_or_create_user(session: Session, workspace: Workspace, email: str, full_name: str, role: UserRole) -> User:
    user = session.exec(
        select(User).where(User.email == email, User.workspace_id == workspace.id)
    ).first()
    if not user:
        user = User(workspace_id=workspace.id, email=email, full_name=full_name, role=role.value)
        session.add(user)
        session.commit()
        session.refresh(user)
        print(f"✅ Added {role.value.lower()} user {email}")
    return user


def seed_dev_data(engine: Optional[Engine] = None) -> Dict[str, str]:
    """
    Seed a demo workspace with one admin, one client and the client's project.
    Safe to run repeatedly. Returns the ids and bearer tokens it ends up with.
    """
    engine = engine or default_engine
    print("🌱 Seeding development data...")
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        workspace = _get_or_create_workspace(session, "Demo Workspace")
        admin = _get_or_create_user(session, workspace, "admin@demo.com", "Admin User", UserRole.ADMIN)
        client = _get_or_create_user(session, workspace, "client@demo.com", "Demo Client", UserRole.CLIENT)

        project = session.exec(
            select(Project).where(Project.workspace_id == workspace.id, Project.client_id == client.id)
        ).first()
        if not project:
            project = Project(
                workspace_id=workspace.id,
                client_id=client.id,
                name="Demo Website",
                description="Sample project for ticket and payment flows",
            )
            session.add(project)
            session.commit()
            session.refresh(project)
            print("✅ Added demo project")

        result = {
            "workspace_id": workspace.id,
            "project_id": project.id,
            "admin_id": admin.id,
            "client_id": client.id,
            "admin_token": create_token_for_user(admin.id, workspace.id, UserRole.ADMIN, admin.email),
            "client_token": create_token_for_user(client.id, workspace.id, UserRole.CLIENT, client.email),
        }

    print("🌱 Development data seeding complete.")
    return result


def seed_staging_data(engine: Optional[Engine] = None) -> Dict[str, str]:
    """Seed staging database with minimal safe data."""
    engine = engine or default_engine
    print("🌱 Seeding staging data...")
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        workspace = _get_or_create_workspace(session, "Staging Workspace")
        admin = _get_or_create_user(session, workspace, "staging-admin@portal.dev", "Staging Admin", UserRole.ADMIN)
        result = {"workspace_id": workspace.id, "admin_id": admin.id}

    print("🌱 Staging data seeding complete.")
    return result


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the client portal database.")
    parser.add_argument(
        "--env",
        choices=["dev", "staging"],
        default="dev",
        help="Select environment to seed (dev or staging)",
    )
    args = parser.parse_args()

    if args.env == "dev":
        seeded = seed_dev_data()
        print(f"🔑 Admin token:  {seeded['admin_token']}")
        print(f"🔑 Client token: {seeded['client_token']}")
        print(f"📁 Project id:   {seeded['project_id']}")
    elif args.env == "staging":
        seed_staging_data()
