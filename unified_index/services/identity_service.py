"""Identity service - merge same-email identities from every source into unified persons."""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from unified_index.db.enums import LinkOutcome, PersonSource
from unified_index.db.models import MContact, PersonLink, TwCompany, TwUser, UnifiedPerson
from unified_index.utils.normalization import escape_like_string, normalize_email, normalize_search_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalIdentity:
    """Name and email of one source identity, as seen at link time."""

    source: PersonSource
    external_id: str
    display_name: str | None
    email: str | None
    is_company: bool = False


def load_external_identity(db: Session, source: str, external_id: str) -> ExternalIdentity | None:
    """Read an identity from its source table; None when it does not exist."""
    person_source = PersonSource(source)
    external_id = str(external_id)

    if person_source == PersonSource.MISSIVE_CONTACT:
        contact = db.get(MContact, external_id)
        if contact is None:
            return None
        return ExternalIdentity(
            source=person_source,
            external_id=external_id,
            display_name=(contact.name or "").strip() or None,
            email=contact.email,
        )

    if person_source == PersonSource.TEAMWORK_USER:
        user = db.get(TwUser, external_id)
        if user is None:
            return None
        return ExternalIdentity(
            source=person_source,
            external_id=external_id,
            display_name=user.full_name or None,
            email=user.email,
        )

    company = db.get(TwCompany, external_id)
    if company is None:
        return None
    return ExternalIdentity(
        source=person_source,
        external_id=external_id,
        display_name=(company.name or "").strip() or None,
        email=company.email_one,
        is_company=True,
    )


def get_link(db: Session, source: str, external_id: str) -> PersonLink | None:
    return db.execute(
        select(PersonLink).where(
            PersonLink.source == source,
            PersonLink.external_id == str(external_id),
        )
    ).scalar_one_or_none()


def find_person_by_email(db: Session, email: str | None) -> UnifiedPerson | None:
    normalized = normalize_email(email)
    if not normalized:
        return None
    return db.execute(
        select(UnifiedPerson)
        .where(func.lower(UnifiedPerson.primary_email) == normalized)
        .order_by(UnifiedPerson.created_at, UnifiedPerson.id)
        .limit(1)
    ).scalar_one_or_none()


def link_person_from_external_identity(db: Session, source: str, external_id: str) -> LinkOutcome:
    """
    Link an external identity to a unified person, creating the person if needed.

    Returns ``skipped`` for an identity that is already linked or does not
    exist, ``linked`` when its email matched an existing person and
    ``created`` otherwise. Runs once per identity, on first sighting.
    """
    source = PersonSource(source).value
    if get_link(db, source, external_id) is not None:
        return LinkOutcome.SKIPPED
    identity = load_external_identity(db, source, external_id)
    if identity is None:
        return LinkOutcome.SKIPPED

    person = find_person_by_email(db, identity.email)
    outcome = LinkOutcome.LINKED
    if person is None:
        email = (identity.email or "").strip() or None
        person = UnifiedPerson(
            id=uuid.uuid4(),
            display_name=identity.display_name or email or identity.external_id,
            primary_email=email,
            is_company=identity.is_company,
        )
        db.add(person)
        outcome = LinkOutcome.CREATED

    db.add(
        PersonLink(
            person_id=person.id,
            source=source,
            external_id=identity.external_id,
        )
    )
    db.flush()
    logger.debug("Identity %s/%s %s person %s", source, external_id, outcome.value, person.id)
    return outcome


def find_person_ids_by_search(db: Session, search: str | None) -> list[uuid.UUID]:
    """
    Ids of persons whose own fields or any linked identity match ``search``.

    Matches are case-insensitive substrings of display name and primary email,
    teamwork user names (including "first last") and emails, company name and
    email, and missive contact name and email. Blank input matches nothing.
    """
    term = normalize_search_text(search)
    if not term:
        return []
    pattern = f"%{escape_like_string(term)}%"

    def like(column):
        return column.ilike(pattern, escape="\\")

    user_full_name = (
        func.coalesce(TwUser.first_name, "") + " " + func.coalesce(TwUser.last_name, "")
    )
    query = (
        select(UnifiedPerson.id)
        .distinct()
        .outerjoin(PersonLink, PersonLink.person_id == UnifiedPerson.id)
        .outerjoin(
            TwUser,
            (PersonLink.source == PersonSource.TEAMWORK_USER.value)
            & (PersonLink.external_id == TwUser.id),
        )
        .outerjoin(
            TwCompany,
            (PersonLink.source == PersonSource.TEAMWORK_COMPANY.value)
            & (PersonLink.external_id == TwCompany.id),
        )
        .outerjoin(
            MContact,
            (PersonLink.source == PersonSource.MISSIVE_CONTACT.value)
            & (PersonLink.external_id == MContact.id),
        )
        .where(
            or_(
                like(UnifiedPerson.display_name),
                like(UnifiedPerson.primary_email),
                like(TwUser.first_name),
                like(TwUser.last_name),
                like(TwUser.email),
                like(user_full_name),
                like(TwCompany.name),
                like(TwCompany.email_one),
                like(MContact.name),
                like(MContact.email),
            )
        )
    )
    return list(db.execute(query).scalars())


def list_person_links(db: Session, person_id: uuid.UUID) -> list[PersonLink]:
    return list(
        db.execute(
            select(PersonLink).where(PersonLink.person_id == person_id).order_by(PersonLink.created_at)
        ).scalars()
    )
