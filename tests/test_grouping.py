# tests/test_grouping.py
import math

import pytest
from sqlalchemy import func, select

from qurbani.domain.errors import ConstraintViolation, NotFoundError, ValidationError
from qurbani.infrastructure.models import CowGroup, CowShare, Donation
from qurbani.repositories.donation_repos import transaction
from qurbani.services import donation_service, grouping_service
from qurbani.services.assignment_service import split_pending
from qurbani.services.grouping_service import place_cow_donation


async def group_sizes(session_factory):
    async with transaction(session_factory) as store:
        groups = await store.list_groups_with_counts()
    # oldest first
    return [g["share_count"] for g in sorted(groups, key=lambda g: g["id"])]


async def ungrouped_cow(store, donor_id):
    """A cow donation without a share, to build group layouts by hand."""
    donation = await store.create_donation(donor_id, 100.0, "cow")
    return donation.id


# -------------------------------
# Sequential placement
# -------------------------------

async def test_fourteen_cows_fill_two_groups(session_factory, add_donation):
    for _ in range(14):
        await add_donation("cow")

    assert await group_sizes(session_factory) == [7, 7]

    async with transaction(session_factory) as store:
        complete = await store.list_complete_pending_groups()
    assert len(complete) == 2
    assert all(len(members) == 7 for _, members in complete)


async def test_eighth_cow_opens_new_group(session_factory, add_donation):
    ids = [await add_donation("cow") for _ in range(7)]
    async with transaction(session_factory) as store:
        first_group = (await store.get_share(ids[0])).cow_group_id

    eighth = await add_donation("cow")

    async with transaction(session_factory) as store:
        share = await store.get_share(eighth)
        assert share.cow_group_id != first_group
        assert await store.count_group_members(first_group) == 7
        assert await store.count_group_members(share.cow_group_id) == 1


@pytest.mark.parametrize("n", [1, 6, 7, 8, 20, 35])
async def test_packing_leaves_at_most_one_partial_group(session_factory, add_donation, n):
    for _ in range(n):
        await add_donation("cow")

    sizes = await group_sizes(session_factory)
    assert len(sizes) == math.ceil(n / 7)
    assert sum(sizes) == n
    assert all(0 < s <= 7 for s in sizes)
    assert len([s for s in sizes if s < 7]) <= 1


async def test_every_cow_donation_has_exactly_one_share(session_factory, add_donation):
    for i in range(10):
        await add_donation("cow" if i % 3 else "sheep")

    async with session_factory() as session:
        cows = (await session.execute(
            select(func.count(Donation.id)).where(Donation.type == "cow")
        )).scalar_one()
        shares = (await session.execute(select(func.count(CowShare.donation_id)))).scalar_one()
        sheep_shares = (await session.execute(
            select(func.count(CowShare.donation_id))
            .join(Donation, Donation.id == CowShare.donation_id)
            .where(Donation.type == "sheep")
        )).scalar_one()
    assert cows == shares == 6
    assert sheep_shares == 0


async def test_new_share_goes_to_fullest_open_group(session_factory, donor_id):
    async with transaction(session_factory) as store:
        small = await store.create_group()
        big = await store.create_group()
        for _ in range(2):
            await store.create_cow_share(await ungrouped_cow(store, donor_id), small)
        for _ in range(5):
            await store.create_cow_share(await ungrouped_cow(store, donor_id), big)

        assert await store.list_open_groups() == [(big, 5), (small, 2)]
        placed = await place_cow_donation(store, await ungrouped_cow(store, donor_id))

    assert placed == big


async def test_full_groups_are_never_chosen(session_factory, donor_id):
    async with transaction(session_factory) as store:
        full = await store.create_group()
        for _ in range(7):
            await store.create_cow_share(await ungrouped_cow(store, donor_id), full)

        assert await store.list_open_groups() == []
        placed = await place_cow_donation(store, await ungrouped_cow(store, donor_id))

    assert placed != full

# -------------------------------
# Share constraints
# -------------------------------

async def test_share_rejected_when_group_full(session_factory, donor_id):
    async with transaction(session_factory) as store:
        group_id = await store.create_group()
        for _ in range(7):
            await store.create_cow_share(await ungrouped_cow(store, donor_id), group_id)
        extra = await ungrouped_cow(store, donor_id)
        with pytest.raises(ConstraintViolation):
            await store.create_cow_share(extra, group_id)


async def test_duplicate_share_rejected(session_factory, donor_id):
    async with transaction(session_factory) as store:
        first = await store.create_group()
        second = await store.create_group()
        donation_id = await ungrouped_cow(store, donor_id)
        await store.create_cow_share(donation_id, first)
        with pytest.raises(ConstraintViolation):
            await store.create_cow_share(donation_id, second)


async def test_sheep_cannot_join_a_group(session_factory, donor_id):
    async with transaction(session_factory) as store:
        group_id = await store.create_group()
        sheep = await store.create_donation(donor_id, 100.0, "sheep")
        with pytest.raises(ConstraintViolation):
            await store.create_cow_share(sheep.id, group_id)

# -------------------------------
# Atomic creation
# -------------------------------

async def test_failed_placement_rolls_back_donation(session_factory, donor_id, monkeypatch):
    async def broken_placement(store, donation_id):
        raise RuntimeError("placement failed")

    monkeypatch.setattr(donation_service, "place_cow_donation", broken_placement)

    with pytest.raises(RuntimeError):
        await donation_service.create_donation(session_factory, donor_id, 100.0, "cow")

    async with session_factory() as session:
        assert (await session.execute(select(func.count(Donation.id)))).scalar_one() == 0
        assert (await session.execute(select(func.count(CowGroup.id)))).scalar_one() == 0


async def test_lost_race_is_retried_from_scratch(session_factory, donor_id, monkeypatch):
    calls = []

    async def flaky_placement(store, donation_id):
        calls.append(donation_id)
        if len(calls) == 1:
            raise ConstraintViolation("group filled concurrently")
        return await place_cow_donation(store, donation_id)

    monkeypatch.setattr(donation_service, "place_cow_donation", flaky_placement)

    donation = await donation_service.create_donation(session_factory, donor_id, 100.0, "cow", max_retries=2)

    assert len(calls) == 2
    async with session_factory() as session:
        # the first attempt's donation was rolled back
        assert (await session.execute(select(func.count(Donation.id)))).scalar_one() == 1
    assert donation["cow_group_id"] is not None


async def test_retries_are_bounded(session_factory, donor_id, monkeypatch):
    async def always_conflicting(store, donation_id):
        raise ConstraintViolation("group full")

    monkeypatch.setattr(donation_service, "place_cow_donation", always_conflicting)

    with pytest.raises(ConstraintViolation):
        await donation_service.create_donation(session_factory, donor_id, 100.0, "cow", max_retries=2)

    async with session_factory() as session:
        assert (await session.execute(select(func.count(Donation.id)))).scalar_one() == 0


async def test_donation_for_unknown_donor(session_factory):
    with pytest.raises(NotFoundError):
        await donation_service.create_donation(session_factory, 999, 100.0, "cow")

# -------------------------------
# Manual share management
# -------------------------------

async def test_add_share_to_group_checks(session_factory, donor_id, add_donation):
    sheep_id = await add_donation("sheep")
    grouped_cow = await add_donation("cow")
    # opened after the cow above was placed, so it starts empty
    group = await grouping_service.create_cow_group(session_factory)

    with pytest.raises(NotFoundError):
        await grouping_service.add_share_to_group(session_factory, 999, grouped_cow)
    with pytest.raises(ValidationError):
        await grouping_service.add_share_to_group(session_factory, group["id"], sheep_id)
    with pytest.raises(ValidationError):
        await grouping_service.add_share_to_group(session_factory, group["id"], grouped_cow)
    with pytest.raises(ValidationError):
        await grouping_service.add_share_to_group(session_factory, group["id"], None)

    async with transaction(session_factory) as store:
        loose_cow = await ungrouped_cow(store, donor_id)
    share = await grouping_service.add_share_to_group(session_factory, group["id"], loose_cow)
    assert share["cow_group_id"] == group["id"]

    detail = await grouping_service.get_cow_group(session_factory, group["id"])
    assert [s["donation_id"] for s in detail["shares"]] == [loose_cow]

# -------------------------------
# Dispatched groups
# -------------------------------

async def test_dispatched_group_is_not_refilled(session_factory, add_donation):
    first_batch = [await add_donation("cow") for _ in range(7)]
    await split_pending(session_factory, ["A"])
    async with transaction(session_factory) as store:
        dispatched_group = (await store.get_share(first_batch[0])).cow_group_id

    await donation_service.delete_donation(session_factory, first_batch[-1])
    second_batch = [await add_donation("cow") for _ in range(7)]

    async with transaction(session_factory) as store:
        assert await store.count_group_members(dispatched_group) == 6
        new_groups = {(await store.get_share(d)).cow_group_id for d in second_batch}
    assert dispatched_group not in new_groups
    assert len(new_groups) == 1

    result = await split_pending(session_factory, ["B"])
    assert result.cow_groups_count == 1
    assert sorted(result.allocation[result.agents[0].id]) == sorted(second_batch)


async def test_group_with_closed_member_is_not_open(session_factory, donor_id, add_donation):
    cows = [await add_donation("cow") for _ in range(3)]
    async with transaction(session_factory) as store:
        group_id = (await store.get_share(cows[0])).cow_group_id
        await store.set_status([cows[1]], "done")

    async with transaction(session_factory) as store:
        assert await store.list_open_groups() == []
        assert await store.count_dispatched_members(group_id) == 1

    fresh = await add_donation("cow")
    async with transaction(session_factory) as store:
        assert (await store.get_share(fresh)).cow_group_id != group_id

    async with transaction(session_factory) as store:
        loose_cow = await ungrouped_cow(store, donor_id)
    with pytest.raises(ValidationError):
        await grouping_service.add_share_to_group(session_factory, group_id, loose_cow)
