import pytest
from bson import ObjectId

from errors import OrderNotFound, ValidationError


@pytest.fixture()
def placed(workflow, add_lesson):
    """A pending order for 2 spaces of L1 and 1 space of L2 (5 spaces each)."""
    l1 = add_lesson(spaces=5, price=10)
    l2 = add_lesson(spaces=5, price=5)
    order = workflow.submit(
        {
            "firstName": "Ada",
            "items": [{"lessonId": l1, "quantity": 2}, {"lessonId": l2, "quantity": 1}],
        }
    )
    return order, l1, l2


def test_get_and_list(lifecycle, placed):
    order, _, _ = placed

    assert lifecycle.get(order["id"])["total"] == 25
    assert [o["id"] for o in lifecycle.list()] == [order["id"]]


def test_get_missing(lifecycle):
    with pytest.raises(OrderNotFound):
        lifecycle.get(str(ObjectId()))


def test_update_merges_customer_fields(lifecycle, placed, spaces_of):
    order, l1, _ = placed

    updated = lifecycle.update(order["id"], {"phone": "07000", "_id": "ignored"})

    assert updated["phone"] == "07000"
    assert updated["firstName"] == "Ada"
    assert updated["status"] == "pending"
    assert updated["updatedAt"] is not None
    assert spaces_of(l1) == 3


def test_cancel_releases_each_item_once(lifecycle, placed, spaces_of):
    order, l1, l2 = placed

    updated = lifecycle.update(order["id"], {"status": "cancelled"})

    assert updated["status"] == "cancelled"
    assert spaces_of(l1) == 5
    assert spaces_of(l2) == 5

    with pytest.raises(OrderNotFound):
        lifecycle.update(order["id"], {"status": "cancelled"})

    assert spaces_of(l1) == 5
    assert spaces_of(l2) == 5


def test_fulfil_keeps_capacity_spent(lifecycle, placed, spaces_of):
    order, l1, l2 = placed

    updated = lifecycle.update(order["id"], {"status": "fulfilled"})

    assert updated["status"] == "fulfilled"
    assert spaces_of(l1) == 3
    assert spaces_of(l2) == 4


def test_terminal_orders_cannot_change_status(lifecycle, placed, spaces_of):
    order, l1, _ = placed
    lifecycle.update(order["id"], {"status": "fulfilled"})

    for status in ("cancelled", "pending"):
        with pytest.raises(OrderNotFound, match="no longer pending"):
            lifecycle.update(order["id"], {"status": status})

    assert spaces_of(l1) == 3


def test_cancel_after_lesson_deleted_releases_the_rest(lifecycle, placed, spaces_of, db):
    order, l1, l2 = placed
    db["lessons"].delete_one({"_id": ObjectId(l1)})

    updated = lifecycle.update(order["id"], {"status": "cancelled"})

    assert updated["status"] == "cancelled"
    assert spaces_of(l2) == 5


@pytest.mark.parametrize("patch", [None, {}])
def test_update_requires_body(lifecycle, placed, patch):
    order, _, _ = placed
    with pytest.raises(ValidationError, match="Request body is required"):
        lifecycle.update(order["id"], patch)


@pytest.mark.parametrize("patch", [{"total": 0}, {"items": []}, {"createdAt": "2020-01-01"}])
def test_update_rejects_protected_fields(lifecycle, placed, patch):
    order, _, _ = placed
    with pytest.raises(ValidationError, match="cannot be changed"):
        lifecycle.update(order["id"], patch)


def test_update_rejects_unknown_status(lifecycle, placed):
    order, _, _ = placed
    with pytest.raises(ValidationError, match="Invalid status"):
        lifecycle.update(order["id"], {"status": "shipped"})


def test_update_missing_order(lifecycle):
    with pytest.raises(OrderNotFound):
        lifecycle.update(str(ObjectId()), {"phone": "1"})
    with pytest.raises(OrderNotFound):
        lifecycle.update(str(ObjectId()), {"status": "cancelled"})


def test_update_malformed_id(lifecycle):
    with pytest.raises(ValidationError, match="Invalid order id"):
        lifecycle.update("abc", {"phone": "1"})


def test_delete_pending_order_releases(lifecycle, placed, spaces_of, db):
    order, l1, l2 = placed

    result = lifecycle.delete(order["id"])

    assert result == {"msg": "Order deleted", "id": order["id"]}
    assert db["orders"].count_documents({}) == 0
    assert spaces_of(l1) == 5
    assert spaces_of(l2) == 5


def test_delete_twice_is_not_found_and_releases_once(lifecycle, placed, spaces_of):
    order, l1, _ = placed

    lifecycle.delete(order["id"])
    with pytest.raises(OrderNotFound):
        lifecycle.delete(order["id"])

    assert spaces_of(l1) == 5


def test_delete_cancelled_order_does_not_release_again(lifecycle, placed, spaces_of):
    order, l1, _ = placed
    lifecycle.update(order["id"], {"status": "cancelled"})

    lifecycle.delete(order["id"])

    assert spaces_of(l1) == 5


def test_delete_fulfilled_order_keeps_capacity_spent(lifecycle, placed, spaces_of):
    order, l1, _ = placed
    lifecycle.update(order["id"], {"status": "fulfilled"})

    lifecycle.delete(order["id"])

    assert spaces_of(l1) == 3


def test_delete_malformed_id(lifecycle):
    with pytest.raises(ValidationError):
        lifecycle.delete("nope")


@pytest.mark.parametrize(
    "patch",
    [
        {"items.0.quantity": 50},
        {"items.0.lessonId": "x"},
        {"total.value": 0},
        {"status.note": "x"},
        {"createdAt.year": 1999},
        {"$set": {"total": 0}},
        {".hidden": 1},
    ],
)
def test_update_rejects_paths_into_server_fields(lifecycle, placed, spaces_of, db, patch):
    order, l1, _ = placed

    with pytest.raises(ValidationError):
        lifecycle.update(order["id"], patch)

    stored = db["orders"].find_one({"_id": ObjectId(order["id"])})
    assert stored["items"][0]["quantity"] == 2
    assert stored["total"] == 25

    lifecycle.update(order["id"], {"status": "cancelled"})
    assert spaces_of(l1) == 5


def test_update_accepts_dotted_customer_field(lifecycle, placed):
    order, _, _ = placed

    updated = lifecycle.update(order["id"], {"address.city": "London"})

    assert updated["address"] == {"city": "London"}
