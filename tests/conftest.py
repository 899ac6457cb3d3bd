import uuid
from decimal import Decimal

import pytest

import models.event_listener  # noqa: F401
from core.get_db import Base, build_engine, build_session_factory
from models.enums import ActorRole
from schemas.schema import Actor, PropertyCreate, RoomTypeCreate
from services.property_service import PropertyService


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'housing.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def published(monkeypatch):
    events = []

    async def fake_publish(event_name, data):
        events.append((event_name, data))

    monkeypatch.setattr("fire_and_forget.lifecycle_events.publish_event", fake_publish)
    return events


@pytest.fixture
def owner():
    return Actor(id=uuid.uuid4(), role=ActorRole.OWNER)


@pytest.fixture
def student():
    return Actor(id=uuid.uuid4(), role=ActorRole.STUDENT)


@pytest.fixture
def other_student():
    return Actor(id=uuid.uuid4(), role=ActorRole.STUDENT)


@pytest.fixture
def admin():
    return Actor(id=uuid.uuid4(), role=ActorRole.ADMIN)


@pytest.fixture
def make_listing(session_factory, owner):
    async def _make(
        total_rooms=2,
        max_occupancy=2,
        price_per_bed=Decimal("5000"),
        signing_order=None,
    ):
        async with session_factory() as session:
            service = PropertyService(session)
            property = await service.create_property(
                owner,
                PropertyCreate(title="Green Court", signing_order=signing_order),
            )
            room_type = await service.add_room_type(
                property.id,
                owner,
                RoomTypeCreate(
                    name="Twin sharing",
                    total_rooms=total_rooms,
                    max_occupancy=max_occupancy,
                    price_per_bed=price_per_bed,
                ),
            )
            return property.id, room_type.id

    return _make
