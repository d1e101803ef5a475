"""
Tests for PKCE verifier / challenge generation.
"""

import base64
import hashlib

from integrations.pkce import code_challenge, generate_code_verifier, generate_pkce_pair


class TestPkce:
    def test_verifier_shape(self):
        verifier = generate_code_verifier()
        assert len(verifier) == 43
        assert "=" not in verifier
        assert "+" not in verifier and "/" not in verifier

    def test_challenge_is_s256_of_verifier(self):
        verifier, challenge = generate_pkce_pair()
        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).rstrip(b"=").decode()
        assert challenge == expected

    def test_rfc7636_example(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_verifiers_are_random(self):
        assert generate_code_verifier() != generate_code_verifier()
