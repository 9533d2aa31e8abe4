from conftest import API, STRONG_PASSWORD, login, register


class TestRegistration:
    def test_register_returns_public_user(self, client):
        res = register(client)
        assert res.status_code == 201
        body = res.json()
        assert body["message"] == "User created successfully"
        assert body["user"] == {"id": body["user"]["id"], "name": "Alice", "email": "a@x.com"}
        assert "password" not in res.text
        assert "digest" not in res.text

    def test_duplicate_email(self, client):
        assert register(client).status_code == 201
        res = register(client, name="Alice Again", email="A@X.com")
        assert res.status_code == 422
        assert res.json() == {"errors": ["Email has already been taken"]}

    def test_weak_password(self, client):
        res = register(client, password="password")
        assert res.status_code == 422
        errors = res.json()["errors"]
        assert len(errors) == 1
        assert "uppercase" in errors[0]

    def test_missing_fields_are_reported_together(self, client):
        res = client.post(f"{API}/users", json={"user": {}})
        assert res.status_code == 422
        assert res.json()["errors"] == [
            "Name can't be blank",
            "Email can't be blank",
            "Password can't be blank",
        ]

    def test_missing_envelope(self, client):
        res = client.post(f"{API}/users", json={"name": "Alice"})
        assert res.status_code == 422
        assert isinstance(res.json()["errors"], list)


class TestShowUser:
    def test_get_user(self, client):
        user = register(client).json()["user"]
        res = client.get(f"{API}/users/{user['id']}")
        assert res.status_code == 200
        assert res.json() == {"user": user}

    def test_get_user_not_found(self, client):
        res = client.get(f"{API}/users/999")
        assert res.status_code == 404
        assert res.json() == {"error": "User not found"}


class TestLogin:
    def test_login_success(self, client):
        user = register(client).json()["user"]
        res = login(client)
        assert res.status_code == 200
        body = res.json()
        assert body["message"] == "Login successful"
        assert isinstance(body["token"], str) and body["token"].count(".") == 2
        assert body["user"] == user

    def test_login_email_is_case_insensitive(self, client):
        register(client)
        assert login(client, email="A@x.COM").status_code == 200

    def test_wrong_password(self, client):
        register(client)
        res = login(client, password="Wr0ngPassword")
        assert res.status_code == 401
        assert res.json() == {"error": "Invalid email or password"}
        assert "token" not in res.json()

    def test_unknown_email_same_answer(self, client):
        res = login(client, email="nobody@x.com", password=STRONG_PASSWORD)
        assert res.status_code == 401
        assert res.json() == {"error": "Invalid email or password"}
