import pytest

from conftest import auth_header, register_and_login


class TestRegister:
    def test_register_success(self, client):
        r = client.post("/api/register", json={"username": "bob", "password": "password123"})
        assert r.status_code == 200
        assert r.json() == {"message": "User registered successfully"}

    def test_register_duplicate(self, client):
        client.post("/api/register", json={"username": "bob", "password": "password123"})
        r = client.post("/api/register", json={"username": "bob", "password": "otherpass99"})
        assert r.status_code == 400
        assert r.json() == {"message": "Username already exists"}

    @pytest.mark.parametrize(
        "body, message",
        [
            ({"username": "bob!", "password": "password123"}, "Username must contain only letters and digits"),
            ({"username": "bob", "password": "short"}, "Password must be at least 8 characters long"),
        ],
    )
    def test_register_validation(self, client, credentials, body, message):
        r = client.post("/api/register", json=body)
        assert r.status_code == 400
        assert r.json() == {"message": message}
        assert len(credentials) == 0

    def test_register_missing_field_is_400(self, client):
        r = client.post("/api/register", json={"username": "bob"})
        assert r.status_code == 400
        assert "password" in r.json()["message"]


class TestLogin:
    def test_login_returns_verifiable_token(self, client):
        token = register_and_login(client, "bob")
        r = client.get("/api/verify-token", headers=auth_header(token))
        assert r.status_code == 200
        assert r.json() == {"username": "bob"}

    def test_wrong_password_and_unknown_user_look_the_same(self, client):
        register_and_login(client, "bob")
        wrong = client.post("/api/login", json={"username": "bob", "password": "wrongpass1"})
        unknown = client.post("/api/login", json={"username": "nobody", "password": "wrongpass1"})
        assert wrong.status_code == unknown.status_code == 400
        assert wrong.json() == unknown.json() == {"message": "Invalid username or password"}

    def test_remember_me_extends_token(self, client, clock):
        short = register_and_login(client, "bob")
        r = client.post("/api/login", json={"username": "bob", "password": "password123", "rememberMe": True})
        long = r.json()["token"]

        clock.advance(2 * 60 * 60)
        assert client.get("/api/verify-token", headers=auth_header(short)).status_code == 401
        assert client.get("/api/verify-token", headers=auth_header(long)).status_code == 200


class TestVerifyToken:
    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer garbage"}, {"Authorization": "Token abc"}])
    def test_bad_tokens_get_uniform_401(self, client, headers):
        r = client.get("/api/verify-token", headers=headers)
        assert r.status_code == 401
        assert r.json() == {"message": "Unauthorized"}

    def test_expired_token_gets_uniform_401(self, client, clock):
        token = register_and_login(client, "bob")
        clock.advance(60 * 60 + 1)
        r = client.get("/api/verify-token", headers=auth_header(token))
        assert r.status_code == 401
        assert r.json() == {"message": "Unauthorized"}


class TestRooms:
    def test_create_and_list(self, client):
        token = register_and_login(client, "bob")
        r = client.post("/api/create-room", json={"roomName": "lobby"}, headers=auth_header(token))
        assert r.status_code == 200
        assert r.json() == {"message": "Room created successfully", "roomName": "lobby"}

        r = client.get("/api/rooms", headers=auth_header(token))
        assert r.status_code == 200
        assert r.json() == ["lobby"]

    def test_rooms_require_auth(self, client):
        assert client.get("/api/rooms").status_code == 401
        r = client.post("/api/create-room", json={"roomName": "lobby"})
        assert r.status_code == 401

    def test_invalid_room_name(self, client):
        token = register_and_login(client, "bob")
        r = client.post("/api/create-room", json={"roomName": "no spaces"}, headers=auth_header(token))
        assert r.status_code == 400

    def test_missing_room_name(self, client):
        token = register_and_login(client, "bob")
        r = client.post("/api/create-room", json={}, headers=auth_header(token))
        assert r.status_code == 400

    def test_rate_limited_per_user(self, client, clock):
        token = register_and_login(client, "bob")
        client.post("/api/create-room", json={"roomName": "lobby"}, headers=auth_header(token))

        r = client.post("/api/create-room", json={"roomName": "second"}, headers=auth_header(token))
        assert r.status_code == 429
        assert r.json() == {"message": "You can only create one room per minute"}

        # Logging in again does not reset the window
        token = client.post("/api/login", json={"username": "bob", "password": "password123"}).json()["token"]
        r = client.post("/api/create-room", json={"roomName": "second"}, headers=auth_header(token))
        assert r.status_code == 429

        clock.advance(60)
        r = client.post("/api/create-room", json={"roomName": "second"}, headers=auth_header(token))
        assert r.status_code == 200

    def test_duplicate_room_then_rate_limited(self, client, clock):
        alice = register_and_login(client, "alice")
        bob = register_and_login(client, "bob")
        client.post("/api/create-room", json={"roomName": "lobby"}, headers=auth_header(alice))

        r = client.post("/api/create-room", json={"roomName": "lobby"}, headers=auth_header(bob))
        assert r.status_code == 400
        assert r.json() == {"message": "Room already exists"}

        r = client.post("/api/create-room", json={"roomName": "other"}, headers=auth_header(bob))
        assert r.status_code == 429

    def test_registry_full(self, client, registry, clock):
        for i in range(15):
            registry.create_room(f"seed{i}", f"room{i}")
        token = register_and_login(client, "bob")

        r = client.post("/api/create-room", json={"roomName": "one-more"}, headers=auth_header(token))
        assert r.status_code == 400
        assert r.json() == {"message": "Maximum number of rooms reached"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
