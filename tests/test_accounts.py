from storefront import models


def register_and_login(client, email="pat@example.com", password="first-pw"):
    client.post("/signup", json={"email": email, "password": password, "confirmPassword": password})
    body = client.post("/login", json={"email": email, "password": password}).json()
    return body["user"]["id"], {"Authorization": f"Bearer {body['access_token']}"}


def test_change_password(client):
    _, headers = register_and_login(client)
    r = client.put(
        "/account/password",
        json={"currentPassword": "first-pw", "newPassword": "second-pw", "confirmPassword": "second-pw"},
        headers=headers,
    )
    assert r.status_code == 200

    assert client.post("/login", json={"email": "pat@example.com", "password": "first-pw"}).status_code == 401
    assert client.post("/login", json={"email": "pat@example.com", "password": "second-pw"}).status_code == 200


def test_change_password_wrong_current(client):
    _, headers = register_and_login(client)
    r = client.put(
        "/account/password",
        json={"currentPassword": "guess", "newPassword": "x", "confirmPassword": "x"},
        headers=headers,
    )
    assert r.status_code == 401


def test_change_password_mismatch(client):
    _, headers = register_and_login(client)
    r = client.put(
        "/account/password",
        json={"currentPassword": "first-pw", "newPassword": "a", "confirmPassword": "b"},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Passwords do not match"


def test_account_endpoints_need_a_valid_token(client):
    r = client.put("/account/password", json={"currentPassword": "a", "newPassword": "b", "confirmPassword": "b"})
    assert r.status_code == 401
    assert r.json() == {"success": False, "message": "missing bearer token"}

    r = client.request("DELETE", "/account", json={"password": "x"}, headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["message"] == "invalid token"


def test_delete_account_removes_cart_and_keeps_orders(client, db_session, make_product):
    user_id, headers = register_and_login(client)
    product = make_product(price="5.00")
    client.post("/cart/add", json={"user_id": user_id, "item_id": product.id, "quantity": 1})
    client.post(
        "/order/place",
        json={
            "user_id": user_id,
            "items": [{"item_id": product.id, "quantity": 1, "price_at_purchase": "5.00"}],
            "total_price": "5.00",
        },
    )
    client.post("/cart/add", json={"user_id": user_id, "item_id": product.id, "quantity": 2})

    r = client.request("DELETE", "/account", json={"password": "first-pw"}, headers=headers)
    assert r.status_code == 200

    assert db_session.get(models.User, user_id) is None
    assert db_session.query(models.CartLine).count() == 0
    order = db_session.query(models.Order).one()
    assert order.user_id is None
