import pytest

from accounts import AccountService
from conftest import FailingMessageStore, messages_for
from errors import (
    AccountStateError, DuplicateEmail, DuplicateUsername, Forbidden, InvalidCredentials,
    InvalidCurrentPassword, NotFound, ValidationError,
)
from security import decode_token, verify_password


def _create(service, username, email, password="secret1"):
    return service.create({
        "first_name": username.title(),
        "last_name": "Tester",
        "username": username,
        "password": password,
        "email": email,
    })


# ----------------------------------------------------------------- create

def test_create_then_authenticate_yields_same_identity(service, john):
    claims = decode_token(john.token)
    assert (claims.username, claims.role) == ("johndoe", "USER")

    result = service.authenticate("johndoe", "john123")
    claims = decode_token(result.token)
    assert (claims.username, claims.role) == ("johndoe", "USER")


def test_create_applies_defaults_and_forces_user_role(service, store):
    result = service.create({
        "first_name": "Ana",
        "last_name": "Lopez",
        "username": "ana",
        "password": "ana123",
        "email": "Ana@Test.com",
        "role": "ADMIN",
        "plan": "PRO",
        "coins_amount": 1000,
    })
    account = store.find_by_username("ana")
    assert account.role == "USER"
    assert account.plan == "BASIC"
    assert account.coins_amount == 0
    assert account.email == "ana@test.com"
    assert account.profile_picture
    assert account.password_hash != "ana123"
    assert verify_password("ana123", account.password_hash)
    assert result.account.id == account.id


def test_invalid_create_persists_nothing(service, store):
    with pytest.raises(ValidationError):
        service.create({"first_name": "A", "last_name": "B", "username": "nobody", "password": "", "email": "x@y.com"})
    assert store.find_by_username("nobody") is None
    assert store.count() == 0


def test_create_rejects_taken_username_and_email(service, john):
    with pytest.raises(DuplicateUsername):
        _create(service, "johndoe", "new@test.com")
    with pytest.raises(DuplicateEmail):
        _create(service, "johnny", "JohnDoe@test.com")


def test_create_rejects_malformed_email_without_persisting(service, store):
    with pytest.raises(ValidationError) as exc:
        _create(service, "dots", "a..b@x..com")
    assert exc.value.field == "email"
    assert store.count() == 0


# ----------------------------------------------------------- authenticate

def test_wrong_password_and_unknown_user_are_indistinguishable(service, john):
    with pytest.raises(InvalidCredentials) as wrong_password:
        service.authenticate("johndoe", "nope")
    with pytest.raises(InvalidCredentials) as unknown_user:
        service.authenticate("ghost", "john123")
    assert type(wrong_password.value) is type(unknown_user.value)
    assert wrong_password.value.message == unknown_user.value.message
    assert wrong_password.value.status_code == unknown_user.value.status_code


# ------------------------------------------------------------ self update

@pytest.mark.parametrize("patch", [
    {"role": "ADMIN"},
    {"username": "johnny"},
    {"plan": "PRO"},
    {"first_name": "Johnny", "role": "ADMIN"},
])
def test_self_update_rejects_protected_fields_without_mutation(service, store, john, patch):
    before = store.find_by_username("johndoe").model_dump()
    with pytest.raises(Forbidden):
        service.self_update("johndoe", patch)
    assert store.find_by_username("johndoe").model_dump() == before


def test_self_update_merges_changed_fields_and_issues_new_token(service, store, john):
    result = service.self_update("johndoe", {"first_name": "Johnny", "email": "johnny@test.com"})
    stored = store.find_by_username("johndoe")
    assert stored.first_name == "Johnny"
    assert stored.email == "johnny@test.com"
    assert stored.last_name == "Doe"
    assert decode_token(result.token).username == "johndoe"


def test_self_update_ignores_fields_outside_allow_list(service, store, john):
    service.self_update("johndoe", {"coins_amount": 500, "first_name": "Johnny"})
    stored = store.find_by_username("johndoe")
    assert stored.coins_amount == 0
    assert stored.first_name == "Johnny"


def test_self_update_accepts_uploaded_picture_url(service, store, john):
    service.self_update("johndoe", {"profile_picture": "http://cdn.test/uploads/pic.png"})
    assert store.find_by_username("johndoe").profile_picture == "http://cdn.test/uploads/pic.png"


def test_new_password_without_current_password_fails(service, john):
    with pytest.raises(InvalidCurrentPassword):
        service.self_update("johndoe", {"new_password": "new1"})


def test_new_password_with_wrong_current_password_fails(service, john):
    with pytest.raises(InvalidCurrentPassword):
        service.self_update("johndoe", {"new_password": "new1", "current_password": "wrong"})
    assert service.authenticate("johndoe", "john123").account.username == "johndoe"


def test_password_change_replaces_hash(service, john):
    service.self_update("johndoe", {"new_password": "new1", "current_password": "john123"})
    with pytest.raises(InvalidCredentials):
        service.authenticate("johndoe", "john123")
    assert service.authenticate("johndoe", "new1").account.username == "johndoe"


def test_blank_new_password_leaves_password_untouched(service, john):
    service.self_update("johndoe", {"new_password": "   ", "first_name": "Johnny"})
    assert service.authenticate("johndoe", "john123").account.first_name == "Johnny"


def test_self_update_duplicate_email_keeps_stored_value(service, store):
    _create(service, "alice", "a@x.com")
    _create(service, "bob", "b@x.com")
    with pytest.raises(DuplicateEmail):
        service.self_update("bob", {"email": "a@x.com"})
    assert store.find_by_username("bob").email == "b@x.com"


def test_self_update_keeping_own_email_is_not_a_conflict(service, john):
    result = service.self_update("johndoe", {"email": "JOHNDOE@test.com", "last_name": "Smith"})
    assert result.account.email == "johndoe@test.com"
    assert result.account.last_name == "Smith"


def test_self_update_validation_failure_writes_nothing(service, store, john):
    with pytest.raises(ValidationError):
        service.self_update("johndoe", {"first_name": "Johnny", "email": "not-an-email"})
    assert store.find_by_username("johndoe").first_name == "John"


def test_self_update_rejected_for_admin_accounts(service, store, admin):
    with pytest.raises(Forbidden):
        service.self_update("admin", {"first_name": "Root"})
    assert store.find_by_username("admin").first_name == "Admin"


def test_self_update_for_missing_actor_is_a_consistency_error(service):
    with pytest.raises(AccountStateError):
        service.self_update("ghost", {"first_name": "Casper"})


# ----------------------------------------------------------- admin update

def test_admin_update_requires_admin_role(service, john):
    with pytest.raises(Forbidden):
        service.admin_update("USER", "johndoe", {"plan": "PRO"})


def test_admin_update_changes_plan_role_and_coins(service, store, john):
    account = service.admin_update("ADMIN", "johndoe", {"plan": "PRO", "coins_amount": 50, "role": "ADMIN"})
    assert (account.plan, account.coins_amount, account.role) == ("PRO", 50, "ADMIN")
    assert store.find_by_username("johndoe").plan == "PRO"


def test_admin_update_strips_picture_and_password(service, store, john):
    before = store.find_by_username("johndoe")
    service.admin_update("ADMIN", "johndoe", {
        "profile_picture": "http://evil/pic.png",
        "password": "hacked",
        "new_password": "hacked",
        "current_password": "john123",
        "last_name": "Smith",
    })
    after = store.find_by_username("johndoe")
    assert after.profile_picture == before.profile_picture
    assert after.password_hash == before.password_hash
    assert after.last_name == "Smith"


def test_admin_update_cannot_touch_admin_targets(service, store, admin):
    with pytest.raises(Forbidden):
        service.admin_update("ADMIN", "admin", {"first_name": "Other"})
    assert store.find_by_username("admin").first_name == "Admin"


def test_admin_update_cannot_rename(service, john):
    with pytest.raises(Forbidden):
        service.admin_update("ADMIN", "johndoe", {"username": "renamed"})


def test_admin_update_unknown_target(service):
    with pytest.raises(NotFound):
        service.admin_update("ADMIN", "ghost", {"plan": "PRO"})


def test_admin_update_rejects_invalid_plan(service, store, john):
    with pytest.raises(ValidationError):
        service.admin_update("ADMIN", "johndoe", {"plan": "GOLD"})
    assert store.find_by_username("johndoe").plan == "BASIC"


def test_admin_update_duplicate_email(service):
    _create(service, "alice", "a@x.com")
    _create(service, "bob", "b@x.com")
    with pytest.raises(DuplicateEmail):
        service.admin_update("ADMIN", "bob", {"email": "a@x.com"})


# ----------------------------------------------------------------- delete

def test_delete_cascades_messages_and_notifies(service, store, messages, publisher, john):
    _create(service, "alice", "a@x.com")
    messages.add("johndoe", "alice", "hi")
    messages.add("alice", "johndoe", "hello")
    messages.add("alice", "alice", "note to self")

    report = service.delete("johndoe")

    assert report.messages_deleted == 2
    assert report.cascade_error is None
    assert store.find_by_username("johndoe") is None
    assert messages_for("johndoe") == []
    assert len(messages_for("alice")) == 1
    assert publisher.events == [("user/notification", "notificationUserDeletion", {"username": "johndoe"})]
    with pytest.raises(InvalidCredentials):
        service.authenticate("johndoe", "john123")


def test_delete_cascade_failure_does_not_restore_account(store, publisher, mailer, john):
    service = AccountService(store=store, messages=FailingMessageStore(), publisher=publisher, mailer=mailer)
    report = service.delete("johndoe")
    assert report.cascade_error
    assert store.find_by_username("johndoe") is None
    assert publisher.events


def test_delete_unknown_account(service):
    with pytest.raises(NotFound):
        service.delete("ghost")


def test_sweep_removes_messages_of_missing_accounts(service, messages, john):
    _create(service, "alice", "a@x.com")
    messages.add("johndoe", "alice", "kept")
    messages.add("ghost", "alice", "orphan")
    messages.add("alice", "ghost", "orphan")
    assert service.sweep_orphan_messages() == 2
    assert len(messages_for("alice")) == 1


# ----------------------------------------------------------- reset / misc

def test_reset_password_stores_new_hash_and_mails_it(service, mailer, john):
    service.reset_password("johndoe")
    username, one_time = mailer.sent[0]
    assert username == "johndoe"
    with pytest.raises(InvalidCredentials):
        service.authenticate("johndoe", "john123")
    assert service.authenticate("johndoe", one_time).account.username == "johndoe"


def test_reset_password_unknown_user(service, mailer):
    with pytest.raises(NotFound):
        service.reset_password("ghost")
    assert mailer.sent == []


def test_directory_lists_other_regular_users(service, admin, john):
    _create(service, "alice", "a@x.com")
    names = [a.username for a in service.list_directory(exclude_username="johndoe")]
    assert names == ["alice"]


def test_scenario_wrong_current_password_keeps_login(service):
    created = service.create({
        "first_name": "John", "last_name": "Doe", "username": "johndoe",
        "password": "john123", "email": "john@doe.com",
    })
    assert created.account.role == "USER"
    login = service.authenticate("johndoe", "john123")
    claims = decode_token(login.token)
    assert (claims.username, claims.role) == ("johndoe", "USER")
    with pytest.raises(InvalidCurrentPassword):
        service.self_update("johndoe", {"new_password": "new1", "current_password": "wrong"})
    assert service.authenticate("johndoe", "john123").token
