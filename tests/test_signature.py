"""Tests for x-line-signature verification on the raw request body."""

import json

from staff_bot.services.signature_service import verify_signature
from tests.conftest import CHANNEL_SECRET, sign

BODY = json.dumps({"events": [{"type": "follow", "source": {"userId": "U1"}}]}, ensure_ascii=False).encode("utf-8")


class TestVerifySignature:
    def test_valid_signature(self):
        assert verify_signature(BODY, sign(BODY), CHANNEL_SECRET) is True

    def test_non_ascii_body(self):
        body = '{"events":[{"type":"message","message":{"type":"text","text":"シフト"}}]}'.encode("utf-8")
        assert verify_signature(body, sign(body), CHANNEL_SECRET) is True

    def test_every_single_byte_body_mutation_fails(self):
        signature = sign(BODY)
        for i in range(len(BODY)):
            mutated = bytearray(BODY)
            mutated[i] = (mutated[i] + 1) % 128
            assert verify_signature(bytes(mutated), signature, CHANNEL_SECRET) is False

    def test_signature_mutation_fails(self):
        signature = sign(BODY)
        for i in range(len(signature)):
            replacement = "A" if signature[i] != "A" else "B"
            mutated = signature[:i] + replacement + signature[i + 1:]
            assert verify_signature(BODY, mutated, CHANNEL_SECRET) is False

    def test_reserialized_body_fails(self):
        """Whitespace changes from re-encoding invalidate the signature."""
        signature = sign(BODY)
        reencoded = json.dumps(json.loads(BODY), separators=(",", ":")).encode("utf-8")
        assert verify_signature(reencoded, signature, CHANNEL_SECRET) is False

    def test_wrong_secret(self):
        assert verify_signature(BODY, sign(BODY, "other-secret"), CHANNEL_SECRET) is False

    def test_missing_signature(self):
        assert verify_signature(BODY, None, CHANNEL_SECRET) is False
        assert verify_signature(BODY, "", CHANNEL_SECRET) is False

    def test_missing_secret_rejects(self):
        assert verify_signature(BODY, sign(BODY, ""), "") is False

    def test_invalid_utf8_rejected(self):
        body = b"\xff\xfe{}"
        assert verify_signature(body, sign(body), CHANNEL_SECRET) is False
