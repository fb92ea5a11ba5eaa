import re
from unittest.mock import patch

import pytest

from oauth_broker.core.oauth import pkce
from oauth_broker.core.oauth.errors import EntropyUnavailable
from oauth_broker.core.oauth.pkce import compute_s256_challenge, generate_pkce, generate_state, verify_pkce

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


def test_rfc7636_appendix_b_vector():
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert compute_s256_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_generate_pkce_shape():
    pair = generate_pkce()

    assert len(pair.verifier) == 43
    assert URL_SAFE.match(pair.verifier)
    assert URL_SAFE.match(pair.challenge)
    assert "=" not in pair.challenge
    assert pair.method == "S256"
    assert pair.challenge == compute_s256_challenge(pair.verifier)


def test_generate_pkce_is_random():
    verifiers = {generate_pkce().verifier for _ in range(50)}
    assert len(verifiers) == 50


def test_state_is_independent_of_verifier():
    pair = generate_pkce()
    state = generate_state()

    assert URL_SAFE.match(state)
    assert state != pair.verifier
    assert state != pair.challenge


def test_verify_pkce():
    pair = generate_pkce()

    assert verify_pkce(pair.verifier, pair.challenge)
    assert not verify_pkce(pair.verifier + "x", pair.challenge)


def test_entropy_failure_is_fatal():
    with patch.object(pkce.secrets, "token_bytes", side_effect=OSError("no entropy")):
        with pytest.raises(EntropyUnavailable):
            generate_pkce()
        with pytest.raises(EntropyUnavailable):
            generate_state()
