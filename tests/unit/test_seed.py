"""
Tests for the development seed script.
"""
from sqlmodel import Session, select

from core.security import decode_token
from models.models import Project, User
from scripts.seed import seed_dev_data, seed_staging_data


def test_seed_dev_data_is_idempotent(engine):
    first = seed_dev_data(engine)
    second = seed_dev_data(engine)

    assert first["project_id"] == second["project_id"]
    with Session(engine) as session:
        assert len(session.exec(select(User)).all()) == 2
        project = session.get(Project, first["project_id"])
        assert project.client_id == first["client_id"]


def test_seed_tokens_carry_identity(engine):
    seeded = seed_dev_data(engine)

    claims = decode_token(seeded["admin_token"])
    assert claims["user_id"] == seeded["admin_id"]
    assert claims["workspace_id"] == seeded["workspace_id"]
    assert claims["role"] == "ADMIN"
    assert decode_token(seeded["client_token"])["role"] == "CLIENT"


def test_seed_staging_data(engine):
    seeded = seed_staging_data(engine)
    with Session(engine) as session:
        admin = session.get(User, seeded["admin_id"])
        assert admin.role == "ADMIN"
