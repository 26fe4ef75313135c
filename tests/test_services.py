"""
Direct service-layer tests for entry_service — listing, slugs, views,
likes and the create/update/delete lifecycle, without HTTP in the way.
"""
from datetime import datetime

import pytest
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from heritage.cache import cache, purge_after_commit
from heritage.exceptions import ConflictError, NotFoundError, ValidationFailure
from heritage.models import Comment, EntryLike
from heritage.schemas import Caller, Category, CommentCreate, EntryCreate, EntryUpdate
from heritage.services import comment_service, entry_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _entry_data(title: str = "Sun Temple", **overrides) -> EntryCreate:
    fields = {
        "title": title,
        "category": Category.TEMPLE,
        "image_urls": ["https://images.example.com/sun.jpg"],
        "content": "A thirteenth-century temple shaped like a stone chariot.",
        "location": "Konark",
    }
    fields.update(overrides)
    return EntryCreate(**fields)


async def _count(db: AsyncSession, model, *criteria) -> int:
    return (await db.execute(select(func.count()).select_from(model).where(*criteria))).scalar_one()


# ---------------------------------------------------------------------------
# derive_slug
# ---------------------------------------------------------------------------

def test_derive_slug_normalises_title():
    assert entry_service.derive_slug("A Temple!!  of  LIGHT") == "a-temple-of-light"


def test_derive_slug_is_deterministic():
    title = "Festival of Lamps: Diwali in Varanasi"
    assert entry_service.derive_slug(title) == entry_service.derive_slug(title)
    assert entry_service.derive_slug(title) == "festival-of-lamps-diwali-in-varanasi"


def test_derive_slug_edge_cases():
    assert entry_service.derive_slug("  -- Leading and trailing --  ") == "leading-and-trailing"
    assert entry_service.derive_slug("Multi---dash  and\tspace") == "multi-dash-and-space"
    assert entry_service.derive_slug("snake_case stays") == "snake_case-stays"
    assert entry_service.derive_slug("Temple\u00a0of Light") == "temple-of-light"
    assert entry_service.derive_slug("Sun\u3000Temple") == "sun-temple"
    assert entry_service.derive_slug("Café Ruins") == "caf-ruins"
    assert entry_service.derive_slug("!!!") == ""


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_entry(db_session: AsyncSession, admin: Caller):
    entry = await entry_service.create_entry(
        db_session, _entry_data(meta_description="Chariot temple", keywords=["odisha"]), admin
    )
    assert entry["id"] is not None
    assert entry["slug"] == "sun-temple"
    assert entry["category"] == "temple"
    assert entry["imageUrls"] == ["https://images.example.com/sun.jpg"]
    assert entry["views"] == 0
    assert entry["likes"] == []
    assert entry["comments"] == []
    assert entry["metaDescription"] == "Chariot temple"
    assert entry["keywords"] == ["odisha"]
    assert entry["createdBy"] == {"id": admin.id, "name": "Curator"}


@pytest.mark.asyncio
async def test_create_entry_defaults(db_session: AsyncSession, admin: Caller):
    entry = await entry_service.create_entry(db_session, _entry_data(), admin)
    assert entry["metaDescription"] == ""
    assert entry["keywords"] == []


@pytest.mark.asyncio
async def test_create_entry_duplicate_slug_conflicts(db_session: AsyncSession, admin: Caller):
    await entry_service.create_entry(db_session, _entry_data("A Temple of Light"), admin)
    with pytest.raises(ConflictError):
        await entry_service.create_entry(db_session, _entry_data("a temple -- of light!"), admin)


@pytest.mark.asyncio
async def test_create_entry_title_without_word_characters(db_session: AsyncSession, admin: Caller):
    with pytest.raises(ValidationFailure):
        await entry_service.create_entry(db_session, _entry_data("?!?"), admin)


# ---------------------------------------------------------------------------
# get / views
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_entry_counts_every_read(db_session: AsyncSession, admin: Caller):
    created = await entry_service.create_entry(db_session, _entry_data(), admin)

    for expected in range(1, 4):
        entry = await entry_service.get_entry(db_session, created["id"])
        assert entry["views"] == expected


@pytest.mark.asyncio
async def test_get_entry_by_slug_counts_views(db_session: AsyncSession, admin: Caller):
    created = await entry_service.create_entry(db_session, _entry_data(), admin)

    await entry_service.get_entry(db_session, created["id"])
    entry = await entry_service.get_entry_by_slug(db_session, "sun-temple")
    assert entry["id"] == created["id"]
    assert entry["views"] == 2


@pytest.mark.asyncio
async def test_view_does_not_touch_other_fields(db_session: AsyncSession, admin: Caller):
    created = await entry_service.create_entry(db_session, _entry_data(), admin)
    first = await entry_service.get_entry(db_session, created["id"])
    second = await entry_service.get_entry(db_session, created["id"])

    assert second["updatedAt"] == first["updatedAt"]
    assert {k: v for k, v in second.items() if k != "views"} == {
        k: v for k, v in first.items() if k != "views"
    }


@pytest.mark.asyncio
async def test_get_missing_entry(db_session: AsyncSession):
    with pytest.raises(NotFoundError):
        await entry_service.get_entry(db_session, 99999)
    with pytest.raises(NotFoundError):
        await entry_service.get_entry_by_slug(db_session, "no-such-entry")


@pytest.mark.asyncio
async def test_get_entry_deleted_after_view_count(db_session: AsyncSession, monkeypatch):
    # The view increment matched a row, but the entry is gone by the time it is loaded.
    async def counted(db, *criteria):
        return True

    monkeypatch.setattr(entry_service, "record_view", counted)
    with pytest.raises(NotFoundError):
        await entry_service.get_entry(db_session, 99999)


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_entry_keeps_slug(db_session: AsyncSession, admin: Caller):
    created = await entry_service.create_entry(db_session, _entry_data(), admin)

    updated = await entry_service.update_entry(
        db_session,
        created["id"],
        EntryUpdate(title="Black Pagoda", category=Category.MONUMENT, keywords=["konark"]),
    )
    assert updated["title"] == "Black Pagoda"
    assert updated["category"] == "monument"
    assert updated["keywords"] == ["konark"]
    assert updated["slug"] == "sun-temple"
    # Untouched fields are preserved.
    assert updated["location"] == "Konark"
    assert datetime.fromisoformat(updated["updatedAt"]) >= datetime.fromisoformat(updated["createdAt"])


@pytest.mark.asyncio
async def test_update_entry_can_clear_meta_description(db_session: AsyncSession, admin: Caller):
    created = await entry_service.create_entry(
        db_session, _entry_data(meta_description="Old"), admin
    )
    updated = await entry_service.update_entry(
        db_session, created["id"], EntryUpdate(meta_description="")
    )
    assert updated["metaDescription"] == ""


@pytest.mark.asyncio
async def test_update_missing_entry(db_session: AsyncSession):
    with pytest.raises(NotFoundError):
        await entry_service.update_entry(db_session, 99999, EntryUpdate(title="Ghost"))


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_entry_removes_comments_and_likes(
    db_session: AsyncSession, admin: Caller, alice: Caller
):
    created = await entry_service.create_entry(db_session, _entry_data(), admin)
    await entry_service.toggle_like(db_session, created["id"], alice)
    await comment_service.add_comment(db_session, created["id"], CommentCreate(text="Wow"), alice)

    await entry_service.delete_entry(db_session, created["id"])

    assert await _count(db_session, Comment, Comment.entry_id == created["id"]) == 0
    assert await _count(db_session, EntryLike, EntryLike.entry_id == created["id"]) == 0
    with pytest.raises(NotFoundError):
        await entry_service.get_entry(db_session, created["id"])


@pytest.mark.asyncio
async def test_delete_missing_entry(db_session: AsyncSession):
    with pytest.raises(NotFoundError):
        await entry_service.delete_entry(db_session, 99999)


# ---------------------------------------------------------------------------
# toggle_like
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_toggle_like_twice_restores_membership(
    db_session: AsyncSession, admin: Caller, alice: Caller
):
    created = await entry_service.create_entry(db_session, _entry_data(), admin)

    first = await entry_service.toggle_like(db_session, created["id"], alice)
    assert first.is_liked is True
    assert first.likes == 1

    second = await entry_service.toggle_like(db_session, created["id"], alice)
    assert second.is_liked is False
    assert second.likes == 0

    entry = await entry_service.get_entry(db_session, created["id"])
    assert entry["likes"] == []


@pytest.mark.asyncio
async def test_toggle_like_per_user(
    db_session: AsyncSession, admin: Caller, alice: Caller, bob: Caller
):
    created = await entry_service.create_entry(db_session, _entry_data(), admin)

    await entry_service.toggle_like(db_session, created["id"], alice)
    result = await entry_service.toggle_like(db_session, created["id"], bob)
    assert result.likes == 2
    assert result.is_liked is True

    result = await entry_service.toggle_like(db_session, created["id"], alice)
    assert result.likes == 1
    assert result.is_liked is False

    entry = await entry_service.get_entry(db_session, created["id"])
    assert entry["likes"] == [bob.id]


@pytest.mark.asyncio
async def test_toggle_like_refreshes_updated_at(
    db_session: AsyncSession, admin: Caller, alice: Caller
):
    created = await entry_service.create_entry(db_session, _entry_data(), admin)
    before = await entry_service.get_entry(db_session, created["id"])

    await entry_service.toggle_like(db_session, created["id"], alice)
    after = await entry_service.get_entry(db_session, created["id"])

    assert datetime.fromisoformat(after["updatedAt"]) >= datetime.fromisoformat(before["updatedAt"])
    assert after["views"] == before["views"] + 1


@pytest.mark.asyncio
async def test_toggle_like_missing_entry(db_session: AsyncSession, alice: Caller):
    with pytest.raises(NotFoundError):
        await entry_service.toggle_like(db_session, 99999, alice)


@pytest.mark.asyncio
async def test_toggle_like_loses_race_to_concurrent_like(
    db_session: AsyncSession, admin: Caller, alice: Caller, monkeypatch
):
    """
    Another toggle by the same user inserts the like between this toggle's
    delete and its insert.  The two toggles cancel out.
    """
    created = await entry_service.create_entry(db_session, _entry_data(), admin)
    entry_id = created["id"]

    real_execute = db_session.execute
    raced = []

    async def execute(statement, *args, **kwargs):
        is_like_insert = getattr(statement, "is_insert", False) and statement.table is EntryLike.__table__
        if is_like_insert and not raced:
            raced.append(True)
            await real_execute(insert(EntryLike.__table__).values(entry_id=entry_id, user_id=alice.id))
        return await real_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db_session, "execute", execute)
    result = await entry_service.toggle_like(db_session, entry_id, alice)
    monkeypatch.undo()

    assert raced
    assert result.is_liked is False
    assert result.likes == 0
    assert await _count(db_session, EntryLike, EntryLike.entry_id == entry_id) == 0


# ---------------------------------------------------------------------------
# list cache purge
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_writes_defer_list_purge_to_commit(
    db_session: AsyncSession, admin: Caller, alice: Caller, monkeypatch
):
    purges = []

    async def invalidate_entries():
        purges.append(True)

    monkeypatch.setattr(cache, "invalidate_entries", invalidate_entries)

    created = await entry_service.create_entry(db_session, _entry_data(), admin)
    await entry_service.toggle_like(db_session, created["id"], alice)
    await comment_service.add_comment(db_session, created["id"], CommentCreate(text="Stunning"), alice)

    assert purges == []

    await db_session.commit()
    await purge_after_commit(db_session)
    await purge_after_commit(db_session)
    assert purges == [True]
