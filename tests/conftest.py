"""Shared fixtures: an in-memory database with a small curriculum tree."""

import os

os.environ.setdefault("EDUMART_DATABASE_URL", "sqlite+pysqlite:///:memory:")

from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from edumart.core.database import Base
from edumart.models import Category, Material, User

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    yield db
    db.rollback()
    db.close()


@pytest.fixture
def make_user(session):
    def _make(nickname: str = "learner") -> User:
        user = User(nickname=nickname, points=0)
        session.add(user)
        session.commit()
        return user

    return _make


@pytest.fixture
def catalog(session):
    """Grade 1 with a two-subject and a one-subject semester, plus grade 7."""

    grade1 = Category(name="Grade 1", level=1, grade=1)
    grade7 = Category(name="Grade 7", level=1, grade=7)
    session.add_all([grade1, grade7])
    session.flush()

    g1_autumn = Category(name="Grade 1 autumn", level=2, parent_id=grade1.id, sort_order=1)
    g1_spring = Category(name="Grade 1 spring", level=2, parent_id=grade1.id, sort_order=2)
    g7_autumn = Category(name="Grade 7 autumn", level=2, parent_id=grade7.id)
    session.add_all([g1_autumn, g1_spring, g7_autumn])
    session.flush()

    math = Category(name="Math", level=3, subject="math", parent_id=g1_autumn.id)
    chinese = Category(name="Chinese", level=3, subject="chinese", parent_id=g1_autumn.id)
    english = Category(name="English", level=3, subject="english", parent_id=g1_spring.id)
    physics = Category(name="Physics", level=3, subject="physics", parent_id=g7_autumn.id)
    session.add_all([math, chinese, english, physics])
    session.flush()

    materials = SimpleNamespace(
        math_workbook=Material(title="Math workbook", category_id=math.id, price=9),
        math_tests=Material(title="Math unit tests", category_id=math.id, price=9),
        chinese_reader=Material(title="Chinese reader", category_id=chinese.id, price=9),
        free_sampler=Material(title="Free sampler", category_id=math.id, is_free=True),
        english_cards=Material(title="English flash cards", category_id=english.id, price=5),
        physics_notes=Material(title="Physics notes", category_id=physics.id, price=12),
    )
    session.add_all(vars(materials).values())
    session.commit()

    return SimpleNamespace(
        grade1=grade1,
        grade7=grade7,
        g1_autumn=g1_autumn,
        g1_spring=g1_spring,
        g7_autumn=g7_autumn,
        math=math,
        chinese=chinese,
        english=english,
        physics=physics,
        m=materials,
    )
