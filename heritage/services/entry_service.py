"""
Entry service — business logic for the Entry aggregate.

Design notes
------------
- Nothing here rewrites a whole entry to change one part of it.  Views are
  bumped with ``UPDATE … SET views = views + 1``, likes are rows in
  ``entry_likes`` added and removed individually, and comments are rows
  inserted or deleted on their own (see ``comment_service``).  Concurrent
  requests against the same entry therefore cannot lose each other's
  writes.
- Entry loads always use ``populate_existing`` so an object already in the
  session's identity map is refreshed after those statement-level writes.
- List pages go through the cache-aside layer.  Every write except a view
  increment schedules a purge of the cached pages; it runs once the
  transaction has committed.
- Service functions flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency in the router layer.
"""
import logging
import math
import re

from sqlalchemy import and_, asc, delete, desc, func, insert, not_, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from heritage.cache import cache, invalidate_entries_on_commit
from heritage.config import settings
from heritage.exceptions import ConflictError, NotFoundError, ValidationFailure
from heritage.models import Comment, Entry, EntryLike, utcnow
from heritage.schemas import Caller, EntryCreate, EntryListResponse, EntryUpdate, LikeResponse

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Slug derivation
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^A-Za-z0-9_\s-]")
_SLUG_SPACE_RE = re.compile(r"\s+")
_SLUG_DASH_RE = re.compile(r"-+")


def derive_slug(title: str) -> str:
    """
    Return the URL-safe slug for *title*.

    >>> derive_slug("A Temple!!  of  LIGHT")
    'a-temple-of-light'
    """
    slug = _SLUG_STRIP_RE.sub("", title.lower())
    slug = _SLUG_SPACE_RE.sub("-", slug)
    slug = _SLUG_DASH_RE.sub("-", slug)
    return slug.strip("-")


# ---------------------------------------------------------------------------
# Query building
# ---------------------------------------------------------------------------

_SORT_COLUMNS = {
    "createdAt": Entry.created_at,
    "created_at": Entry.created_at,
    "updatedAt": Entry.updated_at,
    "updated_at": Entry.updated_at,
    "views": Entry.views,
    "title": Entry.title,
    "category": Entry.category,
}

_PHRASE_RE = re.compile(r'"([^"]*)"')


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _text_match(term: str):
    """True when *term* occurs, case-insensitively, in any searchable column."""
    pattern = f"%{_escape_like(term)}%"
    return or_(
        Entry.title.ilike(pattern, escape="\\"),
        Entry.content.ilike(pattern, escape="\\"),
        Entry.location.ilike(pattern, escape="\\"),
        Entry.category.ilike(pattern, escape="\\"),
    )


def build_search_clause(search: str | None):
    """
    Translate a free-text query into a WHERE clause, or None for no filter.

    Plain terms are alternatives (any may match), ``"quoted phrases"`` are
    all required and ``-term`` excludes entries containing *term*.
    """
    if not search or not search.strip():
        return None

    phrases = [p.strip() for p in _PHRASE_RE.findall(search) if p.strip()]
    terms: list[str] = []
    excluded: list[str] = []
    for token in _PHRASE_RE.sub(" ", search).split():
        if token.startswith("-"):
            if len(token) > 1:
                excluded.append(token[1:])
        else:
            terms.append(token)

    conditions = []
    if terms:
        conditions.append(or_(*(_text_match(t) for t in terms)))
    conditions.extend(_text_match(p) for p in phrases)
    conditions.extend(not_(_text_match(t)) for t in excluded)
    return and_(*conditions) if conditions else None


def build_filters(search: str | None = None, category: str | None = None) -> list:
    """Return the conjunction members for a list query (empty list ⇒ all entries)."""
    filters = []
    search_clause = build_search_clause(search)
    if search_clause is not None:
        filters.append(search_clause)
    if category and category != "all":
        filters.append(Entry.category == category)
    return filters


def build_order_by(sort: str | None) -> list:
    """
    Parse ``"-createdAt"``-style sort keys into ORDER BY clauses.

    Unknown keys fall back to ``created_at``.  ``id`` is always appended as
    a tie-breaker so consecutive pages never overlap or skip rows.
    """
    clauses = []
    directions: list[bool] = []
    for token in re.split(r"[\s,]+", (sort or "").strip()):
        if not token:
            continue
        descending = token.startswith("-")
        column = _SORT_COLUMNS.get(token.lstrip("+-"), Entry.created_at)
        clauses.append(desc(column) if descending else asc(column))
        directions.append(descending)
    if not clauses:
        clauses.append(desc(Entry.created_at))
        directions.append(True)
    clauses.append(desc(Entry.id) if directions[0] else asc(Entry.id))
    return clauses


def clamp_pagination(page: int, limit: int | None) -> tuple[int, int]:
    if limit is None:
        limit = settings.DEFAULT_PAGE_SIZE
    return max(1, page), min(max(1, limit), settings.MAX_PAGE_SIZE)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _isoformat(value) -> str | None:
    return value.isoformat() if value else None


def _user_projection(user) -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "name": user.name}


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "user": _user_projection(comment.user) or {"id": comment.user_id, "name": None},
        "userName": comment.user_name,
        "text": comment.text,
        "createdAt": _isoformat(comment.created_at),
    }


def entry_to_dict(entry: Entry) -> dict:
    """Serialise a fully loaded Entry (author, likes, comments) to its wire shape."""
    return {
        "id": entry.id,
        "title": entry.title,
        "slug": entry.slug,
        "category": entry.category,
        "imageUrls": list(entry.image_urls),
        "content": entry.content,
        "location": entry.location,
        "likes": [like.user_id for like in entry.likes],
        "comments": [comment_to_dict(c) for c in entry.comments],
        "views": entry.views,
        "metaDescription": entry.meta_description,
        "keywords": list(entry.keywords),
        "createdBy": _user_projection(entry.author),
        "createdAt": _isoformat(entry.created_at),
        "updatedAt": _isoformat(entry.updated_at),
    }


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------

def _entry_query():
    return (
        select(Entry)
        .options(
            joinedload(Entry.author),
            selectinload(Entry.likes),
            selectinload(Entry.comments).joinedload(Comment.user),
        )
        .execution_options(populate_existing=True)
    )


async def _load_entry(db: AsyncSession, *criteria) -> Entry | None:
    result = await db.execute(_entry_query().where(*criteria))
    return result.unique().scalar_one_or_none()


async def entry_exists(db: AsyncSession, entry_id: int) -> bool:
    result = await db.execute(select(Entry.id).where(Entry.id == entry_id))
    return result.scalar_one_or_none() is not None


async def touch_entry(db: AsyncSession, entry_id: int) -> bool:
    """Refresh ``updated_at`` only.  Returns False when the entry does not exist."""
    result = await db.execute(
        update(Entry)
        .where(Entry.id == entry_id)
        .values(updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def _insert_ignoring_duplicates(db: AsyncSession, table):
    dialect = db.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table).on_conflict_do_nothing()
    if dialect == "sqlite":
        return sqlite.insert(table).on_conflict_do_nothing()
    return insert(table)


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_entries(
    db: AsyncSession,
    search: str | None = None,
    category: str | None = None,
    sort: str = "-createdAt",
    page: int = 1,
    limit: int | None = None,
) -> EntryListResponse:
    """
    Return one page of entries matching *search* and *category*.

    ``total`` counts every match regardless of the page, and
    ``total_pages`` is ``ceil(total / limit)``.
    """
    page, limit = clamp_pagination(page, limit)

    cache_key = cache.list_key(search=search, category=category, sort=sort, page=page, limit=limit)
    cached = await cache.get(cache_key)
    if cached:
        return EntryListResponse(**cached)

    filters = build_filters(search, category)

    count_q = select(func.count()).select_from(Entry).where(*filters)
    total: int = (await db.execute(count_q)).scalar_one()

    entries_q = (
        _entry_query()
        .where(*filters)
        .order_by(*build_order_by(sort))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(entries_q)
    entries = result.unique().scalars().all()

    response = EntryListResponse(
        entries=[entry_to_dict(e) for e in entries],
        total_pages=math.ceil(total / limit),
        current_page=page,
        total=total,
    )
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return response


async def record_view(db: AsyncSession, *criteria) -> bool:
    """
    Add exactly one to ``views`` of the entry matching *criteria*.

    ``updated_at`` is pinned to its current value so a read is not
    reported as a modification.  Returns False when nothing matched.
    """
    result = await db.execute(
        update(Entry)
        .where(*criteria)
        .values(views=Entry.views + 1, updated_at=Entry.updated_at)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def _read_entry(db: AsyncSession, criterion) -> dict:
    if not await record_view(db, criterion):
        raise NotFoundError()
    entry = await _load_entry(db, criterion)
    if entry is None:
        # Deleted between the view increment and the load.
        raise NotFoundError()
    return entry_to_dict(entry)


async def get_entry(db: AsyncSession, entry_id: int) -> dict:
    """Return the entry with *entry_id*, counting this read as a view."""
    return await _read_entry(db, Entry.id == entry_id)


async def get_entry_by_slug(db: AsyncSession, slug: str) -> dict:
    """Return the entry with *slug*, counting this read as a view."""
    return await _read_entry(db, Entry.slug == slug)


async def create_entry(db: AsyncSession, data: EntryCreate, caller: Caller) -> dict:
    """
    Persist a new entry owned by *caller* and return it.

    The slug is derived from the title once, here.  A slug that another
    entry already holds is rejected with ``ConflictError``; no suffix is
    invented.
    """
    slug = derive_slug(data.title)
    if not slug:
        raise ValidationFailure("Title must contain at least one letter or digit")

    existing = await db.execute(select(Entry.id).where(Entry.slug == slug))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"An entry with slug '{slug}' already exists")

    entry = Entry(
        title=data.title,
        slug=slug,
        category=data.category.value,
        image_urls=list(data.image_urls),
        content=data.content,
        location=data.location,
        meta_description=data.meta_description,
        keywords=list(data.keywords),
        created_by=caller.id,
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError as exc:
        # Lost a race with a concurrent create of the same slug.
        raise ConflictError(f"An entry with slug '{slug}' already exists") from exc

    logger.info("Entry %d created by user %d (slug=%r)", entry.id, caller.id, slug)
    invalidate_entries_on_commit(db)
    return entry_to_dict(await _load_entry(db, Entry.id == entry.id))


async def update_entry(db: AsyncSession, entry_id: int, data: EntryUpdate) -> dict:
    """
    Apply the fields present in *data* and return the updated entry.

    Fields left unset or sent as null are unchanged.  The slug keeps the
    value derived at creation even when the title changes.
    """
    entry = (await db.execute(select(Entry).where(Entry.id == entry_id))).scalar_one_or_none()
    if entry is None:
        raise NotFoundError()

    changes = data.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(entry, field, value)
    entry.updated_at = utcnow()

    await db.flush()
    logger.info("Entry %d updated (fields=%s)", entry_id, sorted(changes))
    invalidate_entries_on_commit(db)
    return entry_to_dict(await _load_entry(db, Entry.id == entry_id))


async def delete_entry(db: AsyncSession, entry_id: int) -> None:
    """Remove the entry together with its comments and likes in one transaction."""
    if not await entry_exists(db, entry_id):
        raise NotFoundError()

    await db.execute(delete(Comment).where(Comment.entry_id == entry_id))
    await db.execute(delete(EntryLike).where(EntryLike.entry_id == entry_id))
    await db.execute(delete(Entry).where(Entry.id == entry_id))

    logger.info("Entry %d deleted", entry_id)
    invalidate_entries_on_commit(db)


async def toggle_like(db: AsyncSession, entry_id: int, caller: Caller) -> LikeResponse:
    """
    Flip *caller*'s membership in the entry's likes.

    Removal is tried first; only when there was nothing to remove is a like
    inserted.  If that insert finds a row already present, a concurrent
    toggle by the same user got there first, so this toggle removes it and
    the pair nets out to no change.
    """
    if not await touch_entry(db, entry_id):
        raise NotFoundError()

    own_like = (EntryLike.entry_id == entry_id, EntryLike.user_id == caller.id)
    removed = await db.execute(delete(EntryLike).where(*own_like))
    if removed.rowcount:
        is_liked = False
    else:
        inserted = await db.execute(
            _insert_ignoring_duplicates(db, EntryLike.__table__).values(
                entry_id=entry_id, user_id=caller.id
            )
        )
        is_liked = inserted.rowcount > 0
        if not is_liked:
            await db.execute(delete(EntryLike).where(*own_like))

    count_q = select(func.count()).select_from(EntryLike).where(EntryLike.entry_id == entry_id)
    likes: int = (await db.execute(count_q)).scalar_one()

    logger.info("User %d %s entry %d", caller.id, "liked" if is_liked else "unliked", entry_id)
    invalidate_entries_on_commit(db)
    return LikeResponse(likes=likes, is_liked=is_liked)
