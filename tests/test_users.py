import pytest

from models import db
from models.company import Company, reconcile_user_counts
from models.user import User
from routes.users import create_user, update_user, delete_user
from tasks.models import Task
from tasks.services import create_task
from utils.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError


def counts(world):
    db.session.expire_all()
    return db.session.get(Company, world.acme.id).user_count, db.session.get(Company, world.globex.id).user_count


def test_fixture_counts(world):
    assert counts(world) == (3, 2)


def test_create_user_bumps_company_count(world):
    user = create_user(world.admin, {
        "name": "Nina", "email": "Nina@Globex.com", "password": "pw", "role": "staff",
        "company_id": world.globex.id,
    })
    assert user.email == "nina@globex.com"
    assert user.password != "pw"
    assert counts(world) == (3, 3)


def test_manager_creates_staff_in_own_company(world):
    user = create_user(world.manager, {
        "name": "Sam", "email": "sam@acme.com", "password": "pw", "company_id": world.globex.id,
    })
    assert user.company_id == world.acme.id
    assert user.manager_id == world.manager.id
    assert counts(world) == (4, 2)

    with pytest.raises(Forbidden):
        create_user(world.manager, {"name": "Boss", "email": "boss@acme.com", "password": "pw", "role": "manager"})


def test_duplicate_email_is_conflict(world):
    with pytest.raises(Conflict):
        create_user(world.admin, {"name": "Copy", "email": "alice@acme.com", "password": "pw"})
    assert counts(world) == (3, 2)


def test_unknown_company_is_not_found(world):
    with pytest.raises(NotFound):
        create_user(world.admin, {"name": "X", "email": "x@x.com", "password": "pw", "company_id": 999})


def test_moving_user_between_companies(world):
    update_user(world.admin, world.bob.id, {"company_id": world.globex.id})
    assert counts(world) == (2, 3)

    update_user(world.admin, world.bob.id, {"company_id": None})
    assert counts(world) == (2, 2)


def test_non_admin_cannot_change_admin_fields(world):
    with pytest.raises(Forbidden):
        update_user(world.manager, world.alice.id, {"company_id": world.globex.id})
    with pytest.raises(Forbidden):
        update_user(world.alice, world.alice.id, {"role": "admin"})

    user = update_user(world.alice, world.alice.id, {"name": "Alice S."})
    assert user.name == "Alice S."


def test_delete_user_decrements_count(world):
    delete_user(world.manager, world.bob.id)
    assert db.session.get(User, world.bob.id) is None
    assert counts(world) == (2, 2)


def test_cannot_delete_user_with_tasks(world):
    create_task(world.manager, {
        "title": "Keep", "assigned_to": world.alice.id,
        "start_date": "2024-01-01", "end_date": "2024-01-02",
    })
    with pytest.raises(InvalidState) as exc:
        delete_user(world.admin, world.alice.id)
    assert exc.value.errors == {"assigned_tasks": 1}
    assert counts(world) == (3, 2)


def test_manager_cannot_delete_outside_company(world):
    with pytest.raises(Forbidden):
        delete_user(world.manager, world.carol.id)


def test_reconcile_repairs_drift(world):
    world.acme.user_count = 10
    db.session.commit()

    drifted = reconcile_user_counts()
    db.session.commit()

    assert drifted == {world.acme.id: (10, 3)}
    assert counts(world) == (3, 2)
    assert reconcile_user_counts() == {}


def test_cannot_delete_manager_who_created_tasks(world):
    task = create_task(world.manager, {
        "title": "Handover", "assigned_to": world.alice.id,
        "start_date": "2024-01-01", "end_date": "2024-01-02",
    })
    with pytest.raises(InvalidState) as exc:
        delete_user(world.admin, world.manager.id)
    assert exc.value.errors == {"created_tasks": 1}

    db.session.expire_all()
    assert db.session.get(User, world.manager.id) is not None
    assert db.session.get(Task, task.id).assigned_by_id == world.manager.id


def test_deleting_manager_releases_their_staff(world):
    manager_id = world.manager.id
    delete_user(world.admin, manager_id)

    db.session.expire_all()
    assert db.session.get(User, manager_id) is None
    assert db.session.get(User, world.alice.id).manager_id is None
    assert db.session.get(User, world.bob.id).manager_id is None
    assert db.session.get(User, world.carol.id).manager_id == world.other_manager.id
    assert counts(world) == (2, 2)


@pytest.mark.parametrize("data, field", [
    ({"name": 42, "email": "n@acme.com", "password": "pw"}, "name"),
    ({"name": "Nina", "email": ["n@acme.com"], "password": "pw"}, "email"),
    ({"name": "Nina", "email": "n@acme.com", "password": 1234}, "password"),
])
def test_create_user_rejects_non_string_fields(world, data, field):
    with pytest.raises(ValidationError) as exc:
        create_user(world.admin, data)
    assert exc.value.errors == {field: "must be a string"}
    assert User.query.count() == 7


def test_blank_name_is_missing(world):
    with pytest.raises(ValidationError) as exc:
        create_user(world.admin, {"name": "   ", "email": "n@acme.com", "password": "pw"})
    assert exc.value.errors == {"missing_fields": ["name"]}
