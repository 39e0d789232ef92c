"""Autocomplete service - narrow typeahead lookups over base and hierarchy tables."""

from sqlalchemy import case, func, literal, or_, select, union_all
from sqlalchemy.orm import Session

from unified_index.db.models import (
    CostGroup,
    Location,
    MConversationLabel,
    MSharedLabel,
    PersonLink,
    TwCompany,
    TwProject,
    TwTag,
    UnifiedPerson,
    tw_task_tags,
)
from unified_index.services import hierarchy_service, identity_service
from unified_index.utils.normalization import escape_like_string, normalize_search_text

DEFAULT_LIMIT = 10
MAX_LIMIT = 50


def _clamp(limit: int | None) -> int:
    return min(max(limit or DEFAULT_LIMIT, 1), MAX_LIMIT)


def _patterns(term: str) -> tuple[str, str]:
    escaped = escape_like_string(term)
    return f"%{escaped}%", f"{escaped}%"


def search_projects(db: Session, search: str | None, limit: int | None = DEFAULT_LIMIT) -> list[dict]:
    """Projects by name, company or description; blank input lists the most recently updated."""
    query = select(
        TwProject.id,
        TwProject.name,
        TwCompany.name.label("company_name"),
        TwProject.status,
    ).outerjoin(TwCompany, TwCompany.id == TwProject.company_id)

    term = normalize_search_text(search)
    if not term:
        query = query.order_by(TwProject.updated_at.desc().nulls_last(), TwProject.name.asc())
    else:
        contains, prefix = _patterns(term)
        query = query.where(
            or_(
                TwProject.name.ilike(contains, escape="\\"),
                TwCompany.name.ilike(contains, escape="\\"),
                TwProject.description.ilike(contains, escape="\\"),
            )
        ).order_by(
            case((TwProject.name.ilike(prefix, escape="\\"), 0), else_=1),
            case((TwProject.status == "active", 0), else_=1),
            TwProject.name.asc(),
        )
    return [dict(row) for row in db.execute(query.limit(_clamp(limit))).mappings()]


def search_persons(db: Session, search: str | None, limit: int | None = DEFAULT_LIMIT) -> list[dict]:
    """Persons matching by any linked identity, prefix matches and internal persons first."""
    term = normalize_search_text(search)
    query = select(UnifiedPerson)
    if not term:
        query = query.order_by(UnifiedPerson.created_at.desc(), UnifiedPerson.display_name.asc())
    else:
        person_ids = identity_service.find_person_ids_by_search(db, term)
        if not person_ids:
            return []
        _, prefix = _patterns(term)
        query = query.where(UnifiedPerson.id.in_(person_ids)).order_by(
            case((UnifiedPerson.display_name.ilike(prefix, escape="\\"), 0), else_=1),
            case((UnifiedPerson.is_internal.is_(True), 0), else_=1),
            UnifiedPerson.display_name.asc(),
        )
    persons = db.execute(query.limit(_clamp(limit))).scalars().all()

    link_sources: dict = {}
    if persons:
        for person_id, source in db.execute(
            select(PersonLink.person_id, PersonLink.source)
            .where(PersonLink.person_id.in_([person.id for person in persons]))
            .order_by(PersonLink.created_at, PersonLink.source)
        ).all():
            link_sources.setdefault(person_id, source)

    return [
        {
            "id": person.id,
            "display_name": person.display_name,
            "primary_email": person.primary_email,
            "source_type": link_sources.get(person.id, "unified"),
            "is_internal": person.is_internal,
        }
        for person in persons
    ]


def search_locations(db: Session, search: str | None, limit: int | None = DEFAULT_LIMIT) -> list[dict]:
    """Locations ranked exact, prefix, then substring; the path is the cached search text."""
    query = select(
        Location.id,
        Location.name,
        Location.type,
        Location.search_text.label("path"),
        Location.depth,
    )
    term = normalize_search_text(search)
    if not term:
        query = query.order_by(Location.depth, Location.name)
    else:
        contains, prefix = _patterns(term)
        query = query.where(
            or_(
                Location.name.ilike(contains, escape="\\"),
                Location.search_text.ilike(contains, escape="\\"),
            )
        ).order_by(
            case(
                (func.lower(Location.name) == term.lower(), 0),
                (Location.name.ilike(prefix, escape="\\"), 1),
                else_=2,
            ),
            Location.depth,
            Location.name,
        )
    return [dict(row) for row in db.execute(query.limit(_clamp(limit))).mappings()]


def search_cost_groups(db: Session, search: str | None, limit: int | None = DEFAULT_LIMIT) -> list[dict]:
    """Numeric input searches by code range, anything else by name substring."""
    query = select(
        CostGroup.id,
        CostGroup.code,
        CostGroup.name,
        CostGroup.path,
        CostGroup.search_text,
    )
    term = normalize_search_text(search)
    code_range = hierarchy_service.compute_cost_group_range(term)
    if not term:
        query = query.order_by(CostGroup.code)
    elif code_range is not None:
        low, high = code_range
        query = query.where(CostGroup.code.between(low, high)).order_by(CostGroup.code)
    else:
        contains, prefix = _patterns(term)
        query = query.where(CostGroup.name.ilike(contains, escape="\\")).order_by(
            case((CostGroup.name.ilike(prefix, escape="\\"), 0), else_=1),
            CostGroup.code,
        )
    return [dict(row) for row in db.execute(query.limit(_clamp(limit))).mappings()]


def search_tags(db: Session, search: str | None, limit: int | None = DEFAULT_LIMIT) -> list[dict]:
    """
    Teamwork tags and missive labels, one entry per lower-cased name.

    Blank input ranks by usage; otherwise prefix matches come first.
    """
    tag_usage = (
        select(func.count())
        .select_from(tw_task_tags)
        .where(tw_task_tags.c.tag_id == TwTag.id)
        .scalar_subquery()
    )
    label_usage = (
        select(func.count())
        .select_from(MConversationLabel)
        .where(MConversationLabel.label_id == MSharedLabel.id)
        .scalar_subquery()
    )
    tags = select(
        (literal("tw_") + TwTag.id).label("id"),
        TwTag.name.label("name"),
        literal("teamwork").label("source"),
        tag_usage.label("usage_count"),
    )
    labels = select(
        (literal("m_") + MSharedLabel.id).label("id"),
        MSharedLabel.name.label("name"),
        literal("missive").label("source"),
        label_usage.label("usage_count"),
    )

    term = normalize_search_text(search)
    prefix = None
    if term:
        contains, prefix = _patterns(term)
        tags = tags.where(TwTag.name.ilike(contains, escape="\\"))
        labels = labels.where(MSharedLabel.name.ilike(contains, escape="\\"))

    combined = union_all(tags, labels).subquery("combined_tags")
    candidates = db.execute(
        select(combined).order_by(func.lower(combined.c.name), combined.c.usage_count.desc(), combined.c.id)
    ).mappings().all()

    distinct: dict[str, dict] = {}
    for row in candidates:
        distinct.setdefault(row["name"].lower(), dict(row))
    results = list(distinct.values())
    if prefix is not None:
        lowered_term = term.lower()
        results.sort(key=lambda row: (0 if row["name"].lower().startswith(lowered_term) else 1, row["name"].lower()))
    else:
        results.sort(key=lambda row: (-row["usage_count"], row["name"].lower()))
    return [
        {"id": row["id"], "name": row["name"], "source": row["source"]}
        for row in results[: _clamp(limit)]
    ]
