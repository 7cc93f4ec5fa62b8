"""Tests for the cart state machine."""

import pytest
from bson import ObjectId

import cart
from errors import BadRequest, Conflict, LimitExceeded, NotFound
from schemas import Account, CartLine


@pytest.fixture()
def account():
    return Account(name="Ana", email="ana@mail.com", phone="9876500001", password_hash="x")


class TestCartTransitions:
    def test_add_line_appends(self, account):
        pid = ObjectId()
        cart.add_line(account, pid)
        assert [(line.product_id, line.quantity) for line in account.cart] == [(pid, 1)]

    def test_add_line_rejects_duplicate_product(self, account):
        pid = ObjectId()
        cart.add_line(account, pid)
        with pytest.raises(Conflict):
            cart.add_line(account, pid, 3)
        assert len(account.cart) == 1

    @pytest.mark.parametrize("quantity", [0, 11, -1])
    def test_add_line_rejects_out_of_range_quantity(self, account, quantity):
        with pytest.raises(BadRequest):
            cart.add_line(account, ObjectId(), quantity)
        assert account.cart == []

    def test_increase_saturates_at_ten(self, account):
        pid = ObjectId()
        cart.add_line(account, pid)
        for _ in range(9):
            cart.increase_line(account, pid)
        assert account.find_line(pid).quantity == 10
        with pytest.raises(LimitExceeded):
            cart.increase_line(account, pid)
        assert account.find_line(pid).quantity == 10

    def test_decrease_floors_at_one(self, account):
        pid = ObjectId()
        account.cart.append(CartLine(product_id=pid, quantity=2))
        cart.decrease_line(account, pid)
        with pytest.raises(LimitExceeded):
            cart.decrease_line(account, pid)
        assert account.find_line(pid).quantity == 1

    def test_missing_line(self, account):
        with pytest.raises(NotFound):
            cart.increase_line(account, ObjectId())
        with pytest.raises(NotFound):
            cart.decrease_line(account, ObjectId())


class TestCartEndpoints:
    def test_empty_cart(self, client, auth):
        resp = client.get("/cart", headers=auth)
        assert resp.status_code == 200
        assert resp.json() == []

    def test_requires_auth(self, client):
        resp = client.get("/cart")
        assert resp.status_code == 401
        assert resp.json() == {"message": "Access Denied"}

    def test_rejects_bad_token(self, client):
        resp = client.get("/cart", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_add_and_list(self, client, auth, product_id):
        resp = client.post("/cart/add", json={"product_id": product_id}, headers=auth)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Product added to cart"

        resp = client.get("/cart", headers=auth)
        assert resp.json() == [{"product_id": product_id, "quantity": 1}]

    def test_add_twice_conflicts(self, client, auth, product_id):
        client.post("/cart/add", json={"product_id": product_id}, headers=auth)
        resp = client.post("/cart/add", json={"product_id": product_id, "quantity": 2}, headers=auth)
        assert resp.status_code == 409
        assert len(client.get("/cart", headers=auth).json()) == 1

    def test_add_unavailable_product(self, client, auth, make_product):
        pid = make_product(title="Old phone", availability=False)
        resp = client.post("/cart/add", json={"product_id": pid}, headers=auth)
        assert resp.status_code == 404
        assert resp.json()["message"] == "Product is not available"

    def test_add_unknown_product(self, client, auth):
        resp = client.post("/cart/add", json={"product_id": str(ObjectId())}, headers=auth)
        assert resp.status_code == 404

    def test_add_malformed_product_id(self, client, auth):
        resp = client.post("/cart/add", json={"product_id": "nope"}, headers=auth)
        assert resp.status_code == 404

    def test_add_quantity_out_of_range(self, client, auth, product_id):
        resp = client.post("/cart/add", json={"product_id": product_id, "quantity": 11}, headers=auth)
        assert resp.status_code == 400

    def test_remove(self, client, auth, product_id):
        client.post("/cart/add", json={"product_id": product_id}, headers=auth)
        resp = client.delete(f"/cart/remove/{product_id}", headers=auth)
        assert resp.status_code == 200
        assert client.get("/cart", headers=auth).json() == []

        resp = client.delete(f"/cart/remove/{product_id}", headers=auth)
        assert resp.status_code == 404

    def test_remove_only_touches_own_cart(self, client, signup, product_id):
        alice = signup(name="Alice")
        bob = signup(name="Bob")
        client.post("/cart/add", json={"product_id": product_id}, headers=alice)

        resp = client.delete(f"/cart/remove/{product_id}", headers=bob)
        assert resp.status_code == 404
        assert len(client.get("/cart", headers=alice).json()) == 1

    def test_increase_to_limit(self, client, auth, product_id):
        client.post("/cart/add", json={"product_id": product_id, "quantity": 1}, headers=auth)
        for expected in range(2, 11):
            resp = client.patch(f"/cart/increase/{product_id}", headers=auth)
            assert resp.status_code == 200
            assert resp.json()["quantity"] == expected

        resp = client.patch(f"/cart/increase/{product_id}", headers=auth)
        assert resp.status_code == 422
        assert client.get("/cart", headers=auth).json()[0]["quantity"] == 10

    def test_decrease_at_floor(self, client, auth, product_id):
        client.post("/cart/add", json={"product_id": product_id, "quantity": 2}, headers=auth)
        resp = client.patch(f"/cart/decrease/{product_id}", headers=auth)
        assert resp.json()["quantity"] == 1

        resp = client.patch(f"/cart/decrease/{product_id}", headers=auth)
        assert resp.status_code == 422
        assert client.get("/cart", headers=auth).json()[0]["quantity"] == 1

    def test_increase_missing_line(self, client, auth, product_id):
        resp = client.patch(f"/cart/increase/{product_id}", headers=auth)
        assert resp.status_code == 404
        assert resp.json()["message"] == "Product not found in cart"

    def test_no_duplicate_lines_after_mixed_sequence(self, client, auth, make_product):
        p1 = make_product(title="One")
        p2 = make_product(title="Two")
        for pid in (p1, p2, p1, p2):
            client.post("/cart/add", json={"product_id": pid}, headers=auth)
        client.delete(f"/cart/remove/{p1}", headers=auth)
        client.post("/cart/add", json={"product_id": p1}, headers=auth)
        client.post("/cart/add", json={"product_id": p1}, headers=auth)

        lines = client.get("/cart", headers=auth).json()
        product_ids = [line["product_id"] for line in lines]
        assert sorted(product_ids) == sorted([p1, p2])
