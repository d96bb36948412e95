from elecciones.security import create_access_token, decode_access_token, hash_password, verify_password


def test_password_hash():
    hashed = hash_password("secreto1")
    assert hashed != "secreto1"
    assert verify_password("secreto1", hashed)
    assert not verify_password("secreto2", hashed)


def test_missing_hash_never_verifies():
    assert not verify_password("anything", None)
    assert not verify_password("", "")


def test_token_claims():
    token = create_access_token({"sub": "u1", "rol": "Admin", "org": "org1"})
    claims = decode_access_token(token)
    assert claims["sub"] == "u1"
    assert claims["org"] == "org1"
    assert "exp" in claims


def test_expired_or_tampered_token():
    assert decode_access_token(create_access_token({"sub": "u1"}, expires_minutes=-1)) is None
    assert decode_access_token(create_access_token({"sub": "u1"}) + "x") is None
