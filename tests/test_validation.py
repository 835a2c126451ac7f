"""
Tests for EnvelopeValidator.

Stage 1 (shape) raises MalformedEnvelopeError; stage 2 (records) only
reports issues.
"""

from decimal import Decimal

import pytest

from aivest_backup.validation import EnvelopeValidator, MalformedEnvelopeError


def envelope(**overrides) -> dict:
    document = {
        "userId": "uid-1",
        "schemaVersion": "1.0",
        "integrityDigest": "0" * 64,
        "lastUpdated": "2024-12-01T13:05:00Z",
        "deviceInfo": {"platform": "python", "appVersion": "1.0", "deviceId": "device_abc"},
        "payload": {
            "ledgerEntries": [{"id": "1"}, {"id": "2"}],
            "categoryLimits": {"Food & Dining": {"amount": "5000", "updatedAt": "2024-11-30T09:00:00Z"}},
            "savingsTarget": {"target": "60000", "current": "12000", "updatedAt": None},
            "savingsGoals": [],
            "metadata": {"recordCount": 2, "snapshotTime": "2024-12-01T13:05:00Z", "schemaVersion": "1.0"},
        },
    }
    document.update(overrides)
    return document


@pytest.fixture
def validator() -> EnvelopeValidator:
    return EnvelopeValidator("1.0")


class TestShapeValidation:
    """Stage 1: documents that can't be restored at all."""

    @pytest.mark.parametrize("document", [None, "text", ["payload"], 42])
    def test_non_object_document(self, validator, document):
        with pytest.raises(MalformedEnvelopeError):
            validator.validate(document)

    def test_missing_payload(self, validator):
        document = envelope()
        del document["payload"]
        with pytest.raises(MalformedEnvelopeError) as exc_info:
            validator.validate(document)
        assert exc_info.value.issues[0].field == "payload"
        assert exc_info.value.issues[0].issue_type == "missing"

    def test_encoded_string_payload(self, validator):
        with pytest.raises(MalformedEnvelopeError, match="not an object"):
            validator.validate(envelope(payload="eyJhIjoxfQ=="))

    @pytest.mark.parametrize("version", ["2.0", "10", "beta"])
    def test_unsupported_schema_version(self, validator, version):
        with pytest.raises(MalformedEnvelopeError, match="Unsupported backup schema version"):
            validator.validate(envelope(schemaVersion=version))

    def test_older_minor_version_is_accepted(self, validator):
        parsed = validator.validate(envelope(schemaVersion="1.7"))
        assert parsed.schema_version == "1.7"

    def test_numeric_schema_version_is_coerced(self, validator):
        parsed = validator.validate(envelope(schemaVersion=1.0))
        assert parsed.schema_version == "1.0"

    def test_missing_version_and_digest_are_warnings(self, validator):
        document = envelope()
        del document["schemaVersion"]
        del document["integrityDigest"]
        parsed = validator.validate(document)
        assert parsed.integrity_digest is None
        assert parsed.schema_version is None
        assert {i.field for i in parsed.issues} == {"schemaVersion", "integrityDigest"}
        assert parsed.warning_count == 2


class TestRecordParsing:
    """Stage 2: restorable records and header fields."""

    def test_complete_envelope(self, validator):
        parsed = validator.validate(envelope())
        assert parsed.issues == []
        assert parsed.user_id == "uid-1"
        assert parsed.category_limits["Food & Dining"].amount == Decimal("5000")
        assert parsed.savings_target.target == Decimal("60000")
        assert parsed.last_updated.tzinfo is not None
        assert parsed.device_info.device_id == "device_abc"

    def test_payload_is_kept_verbatim(self, validator):
        """The digest is recomputed over the payload exactly as stored."""
        document = envelope()
        assert validator.validate(document).payload == document["payload"]

    def test_invalid_limit_is_skipped(self, validator):
        document = envelope()
        document["payload"]["categoryLimits"]["Travel"] = {"amount": -1}
        parsed = validator.validate(document)
        assert list(parsed.category_limits) == ["Food & Dining"]
        assert parsed.skipped_records == ["categoryLimits.Travel"]

    def test_limits_of_wrong_type(self, validator):
        document = envelope()
        document["payload"]["categoryLimits"] = ["Food & Dining"]
        parsed = validator.validate(document)
        assert parsed.category_limits == {}
        assert parsed.issues[0].issue_type == "wrong_type"

    def test_missing_savings_target(self, validator):
        document = envelope()
        del document["payload"]["savingsTarget"]
        assert validator.validate(document).savings_target is None

    def test_bad_header_fields_are_warnings(self, validator):
        parsed = validator.validate(envelope(lastUpdated="yesterday", deviceInfo={"platform": "ios"}))
        assert parsed.last_updated is None
        assert parsed.device_info is None
        assert {i.field for i in parsed.issues} == {"lastUpdated", "deviceInfo"}


class TestSummarize:
    """BackupInfo built without parsing records."""

    def test_counts(self, validator):
        info = validator.summarize(envelope())
        assert info.has_data is True
        assert info.record_count == 2
        assert info.ledger_entry_count == 2
        assert info.category_limit_count == 1
        assert info.savings_goal_count == 0
        assert info.schema_version == "1.0"

    def test_record_count_falls_back_to_ledger_length(self, validator):
        document = envelope()
        del document["payload"]["metadata"]
        assert validator.summarize(document).record_count == 2

    def test_no_payload(self, validator):
        document = envelope()
        del document["payload"]
        info = validator.summarize(document)
        assert info.has_data is False
        assert info.record_count == 0

    def test_non_object_document(self, validator):
        with pytest.raises(MalformedEnvelopeError):
            validator.summarize("garbage")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
