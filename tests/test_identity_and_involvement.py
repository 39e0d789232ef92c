"""Tests for person linking across sources and the involvement index."""

from sqlalchemy import func, select

from unified_index.db.enums import InvolvementType, LinkOutcome
from unified_index.db.models import (
    MContact,
    MConversation,
    MConversationAssignee,
    MMessage,
    MMessageRecipient,
    MUser,
    TwCompany,
    TwTask,
    TwUser,
    UnifiedPerson,
)
from unified_index.events import ExternalIdentityCreated, publish
from unified_index.services import identity_service, involvement_service
from unified_index.utils.datetime_parsing import utcnow


def _person_count(db) -> int:
    return db.execute(select(func.count()).select_from(UnifiedPerson)).scalar_one()


# =============================================================================
# Identity
# =============================================================================


def test_same_email_across_sources_links_one_person(db):
    db.add(MContact(id="c1", name="Alice Miller", email="alice@example.com"))
    db.add(TwUser(id="u1", first_name="Alice", last_name="Miller", email="ALICE@example.com"))
    db.flush()

    assert identity_service.link_person_from_external_identity(db, "missive_contact", "c1") == LinkOutcome.CREATED
    assert identity_service.link_person_from_external_identity(db, "teamwork_user", "u1") == LinkOutcome.LINKED

    contact_link = identity_service.get_link(db, "missive_contact", "c1")
    user_link = identity_service.get_link(db, "teamwork_user", "u1")
    assert contact_link.person_id == user_link.person_id
    assert _person_count(db) == 1
    assert len(identity_service.list_person_links(db, contact_link.person_id)) == 2


def test_linking_twice_is_skipped(db):
    db.add(MContact(id="c1", email="bob@example.com"))
    db.flush()

    identity_service.link_person_from_external_identity(db, "missive_contact", "c1")

    assert identity_service.link_person_from_external_identity(db, "missive_contact", "c1") == LinkOutcome.SKIPPED
    assert _person_count(db) == 1


def test_unknown_identity_is_skipped(db):
    assert identity_service.link_person_from_external_identity(db, "teamwork_user", "nope") == LinkOutcome.SKIPPED


def test_company_creates_company_person(db):
    db.add(TwCompany(id="co1", name="Acme GmbH", email_one="info@acme.test"))
    db.flush()

    identity_service.link_person_from_external_identity(db, "teamwork_company", "co1")

    person = db.execute(select(UnifiedPerson)).scalar_one()
    assert person.is_company is True
    assert person.display_name == "Acme GmbH"


def test_identity_without_email_gets_own_person(db):
    db.add_all([MContact(id="c1", name="No Mail"), MContact(id="c2", name="Also No Mail")])
    db.flush()

    identity_service.link_person_from_external_identity(db, "missive_contact", "c1")
    identity_service.link_person_from_external_identity(db, "missive_contact", "c2")

    assert _person_count(db) == 2


def test_identity_created_event_links_person(db):
    db.add(TwUser(id="u1", first_name="Carl", email="carl@example.com"))
    db.flush()

    assert publish(db, ExternalIdentityCreated(source="teamwork_user", external_id="u1")) == 1
    assert identity_service.get_link(db, "teamwork_user", "u1") is not None


def test_find_person_ids_by_search_matches_linked_identities(db):
    db.add(TwUser(id="u1", first_name="Dana", last_name="Scully", email="dana@fbi.test"))
    db.flush()
    identity_service.link_person_from_external_identity(db, "teamwork_user", "u1")
    person_id = identity_service.get_link(db, "teamwork_user", "u1").person_id

    assert identity_service.find_person_ids_by_search(db, "dana scully") == [person_id]
    assert identity_service.find_person_ids_by_search(db, "FBI.test") == [person_id]
    assert identity_service.find_person_ids_by_search(db, "mulder") == []
    assert identity_service.find_person_ids_by_search(db, "  ") == []


# =============================================================================
# Involvement
# =============================================================================


def _linked_user(db, user_id: str, email: str):
    db.add(TwUser(id=user_id, first_name=user_id, email=email))
    db.flush()
    identity_service.link_person_from_external_identity(db, "teamwork_user", user_id)
    return identity_service.get_link(db, "teamwork_user", user_id).person_id


def _linked_contact(db, contact_id: str, email: str):
    db.add(MContact(id=contact_id, email=email))
    db.flush()
    identity_service.link_person_from_external_identity(db, "missive_contact", contact_id)
    return identity_service.get_link(db, "missive_contact", contact_id).person_id


def test_task_involvement(db):
    assignee = _linked_user(db, "u1", "a@example.com")
    creator = _linked_user(db, "u2", "c@example.com")
    task = TwTask(id="t1", name="Fix door", created_by_id="u2", updated_by_id="unlinked")
    task.assignees.append(db.get(TwUser, "u1"))
    db.add(task)
    db.flush()

    assert involvement_service.refresh_task_involvement(db, "t1") == 2

    records = {
        (record.person_id, record.involvement_type)
        for record in involvement_service.get_item_involvement(db, "task", "t1")
    }
    assert records == {
        (assignee, InvolvementType.ASSIGNEE.value),
        (creator, InvolvementType.CREATOR.value),
    }


def test_deleted_task_loses_involvement(db, make_task):
    _linked_user(db, "u1", "a@example.com")
    task = make_task("t1", created_by_id="u1")
    involvement_service.refresh_task_involvement(db, "t1")

    task.deleted_at = utcnow()
    db.flush()

    assert involvement_service.refresh_task_involvement(db, "t1") == 0
    assert involvement_service.get_item_involvement(db, "task", "t1") == []


def test_message_involvement_includes_conversation_roles(db):
    sender = _linked_contact(db, "c1", "sender@example.com")
    recipient = _linked_contact(db, "c2", "to@example.com")
    assignee = _linked_contact(db, "c3", "agent@example.com")
    db.add(MUser(id="mu1", name="Agent", contact_id="c3"))
    db.add(MConversation(id="conv1", subject="Offer"))
    db.flush()
    db.add(MConversationAssignee(conversation_id="conv1", user_id="mu1"))
    db.add(MMessage(id="m1", conversation_id="conv1", from_contact_id="c1"))
    db.flush()
    db.add(MMessageRecipient(message_id="m1", contact_id="c2", recipient_type="to"))
    db.flush()

    involvement_service.refresh_conversation_involvement(db, "conv1")

    records = {
        (record.person_id, record.involvement_type)
        for record in involvement_service.get_item_involvement(db, "email", "m1")
    }
    assert records == {
        (sender, InvolvementType.SENDER.value),
        (recipient, InvolvementType.RECIPIENT.value),
        (assignee, InvolvementType.CONVERSATION_ASSIGNEE.value),
    }


def test_refresh_all_involvement_rebuilds_everything(db, make_task):
    _linked_user(db, "u1", "a@example.com")
    make_task("t1", created_by_id="u1")
    make_task("t2", created_by_id="u1")

    assert involvement_service.refresh_all_involvement(db) == 2
