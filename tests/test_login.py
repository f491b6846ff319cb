from utils.security import decode_token


def test_login_returns_token_for_registered_email(client, register, user_store):
    register("a@b.com", "pw12345678")

    res = client.post("/login", json={"email": "a@b.com", "password": "pw12345678", "rememberMe": True})

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["message"] == "Login successful"
    assert body["user"]["email"] == "a@b.com"
    assert body["user"]["lastLogin"].endswith("Z")

    claims = decode_token(body["token"])
    user = user_store.get_by_email("a@b.com")
    assert claims["email"] == "a@b.com"
    assert claims["sub"] == user.id
    assert user.last_login_at is not None


def test_remember_me_does_not_extend_token(client, register):
    register()
    tokens = [
        client.post("/login", json={"email": "a@b.com", "password": "pw12345678", "rememberMe": flag}).json()["token"]
        for flag in (False, True)
    ]
    lifetimes = {decode_token(t)["exp"] - decode_token(t)["iat"] for t in tokens}
    assert lifetimes == {3600}


def test_wrong_password_and_unknown_email_look_the_same(client, register):
    register("a@b.com", "pw12345678")

    wrong_pw = client.post("/login", json={"email": "a@b.com", "password": "nope-nope-1"})
    unknown = client.post("/login", json={"email": "ghost@b.com", "password": "pw12345678"})

    assert wrong_pw.status_code == unknown.status_code == 401
    assert wrong_pw.json() == unknown.json() == {"message": "Invalid email or password"}


def test_login_is_case_insensitive_on_email(client, register):
    register("a@b.com")
    res = client.post("/login", json={"email": "A@B.COM", "password": "pw12345678"})
    assert res.status_code == 200


def test_inactive_user_cannot_login(client, register, user_store):
    register("a@b.com")
    user_store.get_by_email("a@b.com").is_active = False

    res = client.post("/login", json={"email": "a@b.com", "password": "pw12345678"})
    assert res.status_code == 401
    assert res.json() == {"message": "Invalid email or password"}


def test_login_bad_input(client):
    for payload in ({"email": "not-an-email", "password": "x"}, {"email": "a@b.com"}):
        res = client.post("/login", json=payload)
        assert res.status_code == 400
        assert res.json() == {"message": "Invalid email or password"}
