"""In-memory credential verifier used by the service tests."""

from __future__ import annotations

from authcore.services._shared.ports import InMemoryCredentialVerifier


def test_verify_matches_normalised_identifier():
    verifier = InMemoryCredentialVerifier()
    verifier.add_user(3, "Carol@Example.com", "s3cret-pass")

    assert verifier.verify(" carol@example.com ", "s3cret-pass") == 3
    assert verifier.verify("carol@example.com", "wrong") is None
    assert verifier.verify("carol@example.com", "") is None
    assert verifier.verify("dave@example.com", "s3cret-pass") is None
