import uuid

import pytest

from garagebuddy.constants import ERROR_GARAGE_NOT_FOUND, SUCCESS_GARAGE_CREATED
from garagebuddy.schemas import GarageServiceModel
from garagebuddy.seeding import BrandSeeder, GearboxTypeSeeder
from garagebuddy.services import BrandService, GarageService, GearboxTypeService

GARAGE = {
    "name": "Main Street Garage",
    "address": "1 Main Street, Sofia",
    "email": "shop@example.com",
    "phone": "+359888000000",
    "working_hours": "Mon-Fri 09:00-18:00",
}


@pytest.mark.asyncio
async def test_create_and_get_garage(session):
    service = GarageService(session)
    created = await service.create(GARAGE)
    assert created.succeeded
    assert created.messages == [SUCCESS_GARAGE_CREATED]
    assert isinstance(created.data, uuid.UUID)

    assert await service.exists(created.data)
    fetched = await service.get(created.data)
    assert fetched.succeeded
    assert fetched.data.name == GARAGE["name"]
    assert fetched.data.id == created.data


@pytest.mark.asyncio
async def test_create_garage_with_invalid_model_fails_without_writing(session):
    service = GarageService(session)
    result = await service.create({**GARAGE, "name": "x", "email": "not-an-email"})
    assert not result.succeeded
    assert len(result.messages) == 2
    assert any(m.startswith("name") for m in result.messages)
    assert await service.garages.count() == 0


@pytest.mark.asyncio
async def test_edit_garage(session, make_session):
    service = GarageService(session)
    created = await service.create(GarageServiceModel(**GARAGE))

    edited = await service.edit(created.data, {**GARAGE, "name": "Renamed Garage", "is_active": False})
    assert edited.succeeded

    async with make_session() as other:
        fetched = await GarageService(other).get(created.data)
        assert fetched.data.name == "Renamed Garage"
        assert fetched.data.is_active is False
        stored = await GarageService(other).garages.find(created.data)
        assert stored.modified_on is not None


@pytest.mark.asyncio
async def test_missing_garage_is_a_failed_result(session):
    service = GarageService(session)
    missing = uuid.uuid4()
    assert not await service.exists(missing)
    assert (await service.get(missing)).messages == [ERROR_GARAGE_NOT_FOUND]
    assert (await service.edit(missing, GARAGE)).messages == [ERROR_GARAGE_NOT_FOUND]


@pytest.mark.asyncio
async def test_at_least_one_active_garage_exists(session):
    service = GarageService(session)
    assert not await service.at_least_one_active_garage_exists()
    await service.create({**GARAGE, "is_active": False})
    assert not await service.at_least_one_active_garage_exists()
    await service.create({**GARAGE, "name": "Second Garage"})
    assert await service.at_least_one_active_garage_exists()
    assert [g.name for g in await service.get_all()] == ["Main Street Garage", "Second Garage"]


@pytest.mark.asyncio
async def test_gearbox_types_sorted_and_readonly(session):
    await GearboxTypeSeeder().seed(session)
    await session.commit()

    tracked_before = len(session.identity_map)
    service = GearboxTypeService(session)
    all_types = await service.get_all()
    names = [g.gearbox_type_name for g in all_types]
    assert names == sorted(names)
    assert "Manual" in names
    assert all(g.is_seeded and g.created_on is not None for g in all_types)

    select = await service.get_all_select()
    assert [(s.id, s.gearbox_type_name) for s in select] == [(g.id, g.gearbox_type_name) for g in all_types]
    assert len(session.identity_map) == tracked_before
    assert not any(g in session for g in await service.gearbox_types.all(readonly=True))


@pytest.mark.asyncio
async def test_brand_select_list(session):
    await BrandSeeder().seed(session)
    await session.commit()

    brands = await BrandService(session).get_all_select()
    assert brands[0].brand_name == "Alfa Romeo"
    assert len(brands) == 25


@pytest.mark.asyncio
async def test_listing_garages_keeps_pending_edit_on_shared_session(session, make_session):
    service = GarageService(session)
    created = await service.create(GARAGE)

    garage = await service.garages.find(created.data)
    garage.name = "Pending Rename"
    service.garages.update(garage)
    assert [g.name for g in await service.get_all()] == ["Pending Rename"]

    assert await service.garages.save_changes() == 1
    async with make_session() as other:
        assert (await GarageService(other).get(created.data)).data.name == "Pending Rename"
