"""Tests for identity-provider ID mapping (F1)."""

import pytest

from speaking.core.identity import external_to_uuid, is_uuid


class TestExternalToUuid:
    def test_md5_formatted_as_uuid(self):
        """IDs map to the MD5 digest in 8-4-4-4-12 groups."""
        assert external_to_uuid("user_2abc") == "86f4700f-d313-f14b-8d46-ce3138d4cc8a"

    def test_stable(self):
        assert external_to_uuid("user_2wwXyz123") == external_to_uuid("user_2wwXyz123")
        assert external_to_uuid("user_2wwXyz123") == "b67ba47a-a28d-191a-4d4b-f1dffe3c3b8e"

    def test_result_is_uuid(self):
        assert is_uuid(external_to_uuid("user_anything"))

    def test_uuid_passes_through(self):
        value = "123e4567-e89b-12d3-a456-426614174000"
        assert external_to_uuid(value) == value

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            external_to_uuid("")


class TestIsUuid:
    def test_accepts_upper_case(self):
        assert is_uuid("123E4567-E89B-12D3-A456-426614174000")

    def test_rejects_provider_ids(self):
        assert not is_uuid("user_2abc")
