import pytest

from conftest import order_payload
from reviews import product_rating


@pytest.mark.parametrize("ratings,expected", [([], (0, 0)), ([4, 5], (4.5, 2)), ([1, 2, 3], (2, 3))])
def test_product_rating(ratings, expected):
    assert product_rating([{"rating": r} for r in ratings]) == expected


def _order(client, account, product, status, admin):
    order = client.post("/orders", json=order_payload((product, 1)), headers=account["headers"]).json()
    if status != "pending":
        res = client.put(f"/orders/{order['id']}/status", json={"status": status}, headers=admin["headers"])
        assert res.status_code == 200
    return order


def _review(client, account, product, rating=5, comment="Lovely soft sheets"):
    return client.post(f"/products/{product['id']}/reviews", json={"rating": rating, "comment": comment}, headers=account["headers"])


@pytest.mark.parametrize("status", ["pending", "processing", "cancelled"])
def test_review_requires_shipped_or_delivered_order(client, user, admin, make_product, status):
    product = make_product()
    _order(client, user, product, status, admin)

    eligibility = client.get(f"/products/{product['id']}/can-review", headers=user["headers"]).json()
    assert eligibility == {"canReview": False, "hasEligibleOrder": False, "alreadyReviewed": False}

    res = _review(client, user, product)
    assert res.status_code == 403
    assert res.json()["message"] == "You can only review products from orders that have been shipped or delivered"


@pytest.mark.parametrize("status", ["shipped", "delivered"])
def test_review_after_eligible_order(client, user, admin, make_product, status):
    product = make_product()
    _order(client, user, product, status, admin)

    assert client.get(f"/products/{product['id']}/can-review", headers=user["headers"]).json()["canReview"] is True
    res = _review(client, user, product, rating=4)
    assert res.status_code == 201
    assert res.json() == {"message": "Review added"}

    fetched = client.get(f"/products/{product['id']}").json()
    assert fetched["rating"] == 4
    assert fetched["numReviews"] == 1
    assert fetched["reviews"][0]["name"] == "Jane Smith"


def test_second_review_conflicts(client, user, admin, make_product):
    product = make_product()
    _order(client, user, product, "delivered", admin)
    _review(client, user, product)

    res = _review(client, user, product)
    assert res.status_code == 400
    assert res.json() == {"message": "Product already reviewed"}
    eligibility = client.get(f"/products/{product['id']}/can-review", headers=user["headers"]).json()
    assert eligibility == {"canReview": False, "hasEligibleOrder": True, "alreadyReviewed": True}


def test_rating_recomputed_on_add_and_delete(client, user, other_user, admin, make_product):
    product = make_product()
    _order(client, user, product, "delivered", admin)
    _order(client, other_user, product, "shipped", admin)
    _review(client, user, product, rating=4)
    _review(client, other_user, product, rating=5)

    fetched = client.get(f"/products/{product['id']}").json()
    assert fetched["rating"] == 4.5
    assert fetched["numReviews"] == 2

    reviews = client.get(f"/products/{product['id']}/reviews").json()
    mine = next(r for r in reviews if r["user"] == user["id"])
    theirs = next(r for r in reviews if r["user"] == other_user["id"])

    assert client.delete(f"/products/{product['id']}/reviews/{theirs['id']}", headers=user["headers"]).status_code == 403
    res = client.delete(f"/products/{product['id']}/reviews/{mine['id']}", headers=user["headers"])
    assert res.json() == {"message": "Review removed"}
    fetched = client.get(f"/products/{product['id']}").json()
    assert fetched["rating"] == 5
    assert fetched["numReviews"] == 1

    assert client.delete(f"/products/{product['id']}/reviews/{theirs['id']}", headers=admin["headers"]).status_code == 200
    fetched = client.get(f"/products/{product['id']}").json()
    assert fetched["rating"] == 0
    assert fetched["numReviews"] == 0
    assert fetched["reviews"] == []


def test_review_lookups_not_found(client, user, admin, make_product):
    missing = "64b7f0c2a1b2c3d4e5f60718"
    assert client.get(f"/products/{missing}/reviews").status_code == 404
    assert client.get(f"/products/{missing}/can-review", headers=user["headers"]).status_code == 404
    assert client.post(f"/products/{missing}/reviews", json={"rating": 5, "comment": "Lovely soft sheets"}, headers=user["headers"]).status_code == 404

    product = make_product()
    res = client.delete(f"/products/{product['id']}/reviews/{missing}", headers=admin["headers"])
    assert res.status_code == 404
    assert res.json() == {"message": "Review not found"}


def test_review_body_is_validated(client, user, make_product):
    product = make_product()
    assert _review(client, user, product, rating=6).status_code == 400
    assert _review(client, user, product, comment="bad").status_code == 400


def test_overlapping_reviews_from_two_users_are_both_kept(db, client, user, other_user, admin, make_product, monkeypatch):
    import reviews

    product = make_product()
    _order(client, user, product, "delivered", admin)
    _order(client, other_user, product, "delivered", admin)

    real_check = reviews.has_reviewable_order
    calls = []

    def check_then_interleave(db_, user_id, product_id):
        calls.append(user_id)
        if len(calls) == 1:
            # Another customer's review lands after this request has read the product
            reviews.create_review(db_, {"id": other_user["id"], "name": "John Doe"}, product_id, 2, "Pilled after a wash")
        return real_check(db_, user_id, product_id)

    monkeypatch.setattr(reviews, "has_reviewable_order", check_then_interleave)
    assert _review(client, user, product, rating=4).status_code == 201

    fetched = client.get(f"/products/{product['id']}").json()
    assert sorted(r["user"] for r in fetched["reviews"]) == sorted([user["id"], other_user["id"]])
    assert fetched["numReviews"] == 2
    assert fetched["rating"] == 3


def test_overlapping_reviews_from_one_user_keep_only_one(db, client, user, admin, make_product, monkeypatch):
    import reviews

    product = make_product()
    _order(client, user, product, "delivered", admin)

    real_check = reviews.has_reviewable_order
    calls = []

    def check_then_interleave(db_, user_id, product_id):
        calls.append(user_id)
        if len(calls) == 1:
            reviews.create_review(db_, {"id": user["id"], "name": "Jane Smith"}, product_id, 5, "Lovely soft sheets")
        return real_check(db_, user_id, product_id)

    monkeypatch.setattr(reviews, "has_reviewable_order", check_then_interleave)
    res = _review(client, user, product, rating=1, comment="Changed my mind entirely")
    assert res.status_code == 400
    assert res.json() == {"message": "Product already reviewed"}

    fetched = client.get(f"/products/{product['id']}").json()
    assert fetched["numReviews"] == 1
    assert fetched["rating"] == 5
