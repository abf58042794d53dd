"""Tests for the restore validation pipeline."""

import json

import pytest

from ledgersafe.models import ErrorKind, user_message
from ledgersafe.restore.validator import EMPTY_FILE_MESSAGE
from ledgersafe.snapshot import encrypt_artifact, legacy_fingerprint, sha256_fingerprint


def make_artifact(body: dict, version: str = "2.0.0", **metadata) -> bytes:
    """A current-layout artifact with a correct SHA-256 checksum."""
    document = {
        "schemaVersion": version,
        "createdAt": "2024-06-01T12:00:00+00:00",
        "body": body,
        "metadata": {
            "checksum": sha256_fingerprint(body),
            "checksumAlgorithm": "sha256",
            **metadata,
        },
    }
    return json.dumps(document).encode("utf-8")


VALID_BODY = {
    "customers": [{"id": "c1", "name": "Asha Traders"}],
    "bills": [{"id": "b1", "customerId": "c1", "grandTotal": 100.0, "date": "2024-01-05"}],
    "payments": [{"id": "p1", "customerId": "c1", "amount": 40.0, "date": "2024-01-06"}],
    "items": [],
    "itemRateHistory": [],
    "businessAnalytics": {},
}


class TestDecodeAndParse:
    """Steps that run before the artifact is understood."""

    def test_not_json(self, validator):
        result = validator.validate(b"this is not a backup")
        assert not result.ok
        assert result.reason == ErrorKind.MALFORMED_FORMAT
        assert result.message == user_message(ErrorKind.MALFORMED_FORMAT)

    def test_empty_file(self, validator):
        result = validator.validate(b"")
        assert result.reason == ErrorKind.MALFORMED_FORMAT
        assert result.message == EMPTY_FILE_MESSAGE

    def test_only_bom_and_whitespace(self, validator):
        result = validator.validate("\ufeff  \n".encode("utf-8"))
        assert result.reason == ErrorKind.MALFORMED_FORMAT
        assert result.message == EMPTY_FILE_MESSAGE

    def test_leading_bom_is_accepted(self, validator):
        result = validator.validate(b"\xef\xbb\xbf" + make_artifact(VALID_BODY))
        assert result.ok

    def test_invalid_utf8(self, validator):
        result = validator.validate(b"\xff\xfe{")
        assert result.reason == ErrorKind.MALFORMED_FORMAT

    def test_top_level_array(self, validator):
        result = validator.validate(b"[1, 2, 3]")
        assert result.reason == ErrorKind.MALFORMED_FORMAT

    def test_nan_is_rejected(self, validator):
        text = '{"schemaVersion": "2.0.0", "body": {"bills": [{"id": "b1", "grandTotal": NaN}]}}'
        result = validator.validate(text)
        assert result.reason == ErrorKind.MALFORMED_FORMAT

    def test_unknown_layout(self, validator):
        result = validator.validate(b'{"hello": "world"}')
        assert result.reason == ErrorKind.MALFORMED_FORMAT

    def test_body_not_an_object(self, validator):
        result = validator.validate(b'{"schemaVersion": "2.0.0", "body": []}')
        assert result.reason == ErrorKind.MALFORMED_FORMAT


class TestVersion:
    """Version compatibility checks."""

    def test_newer_major_version(self, validator):
        result = validator.validate(make_artifact(VALID_BODY, version="3.0.0"))
        assert result.reason == ErrorKind.VERSION_INCOMPATIBLE

    def test_unparseable_version(self, validator):
        result = validator.validate(make_artifact(VALID_BODY, version="banana"))
        assert result.reason == ErrorKind.VERSION_INCOMPATIBLE

    def test_older_minor_version_is_accepted(self, validator):
        assert validator.validate(make_artifact(VALID_BODY, version="2.1")).ok

    def test_unknown_checksum_algorithm(self, validator):
        result = validator.validate(make_artifact(VALID_BODY, checksumAlgorithm="md5"))
        assert result.reason == ErrorKind.VERSION_INCOMPATIBLE


class TestChecksum:
    """Fingerprint verification."""

    def test_valid_checksum(self, validator):
        result = validator.validate(make_artifact(VALID_BODY))
        assert result.ok
        assert result.snapshot.fingerprint == sha256_fingerprint(VALID_BODY)

    def test_edited_value_is_detected(self, validator):
        document = json.loads(make_artifact(VALID_BODY))
        document["body"]["bills"][0]["grandTotal"] = 1.0

        result = validator.validate(json.dumps(document))

        assert not result.ok
        assert result.reason == ErrorKind.CHECKSUM_MISMATCH
        assert result.message == user_message(ErrorKind.CHECKSUM_MISMATCH)

    def test_key_order_does_not_matter(self, validator):
        document = json.loads(make_artifact(VALID_BODY))
        document["body"] = dict(reversed(list(document["body"].items())))
        assert validator.validate(json.dumps(document, indent=4)).ok

    @pytest.mark.asyncio
    async def test_every_built_snapshot_is_accepted(self, builder, validator):
        for _ in range(3):
            snapshot = await builder.build()
            result = validator.validate(snapshot.serialize())
            assert result.ok
            assert result.snapshot.fingerprint == snapshot.fingerprint

    def test_metadata_in_file_is_not_trusted(self, validator):
        artifact = make_artifact(VALID_BODY, counts={"customers": 99, "bills": 99})
        result = validator.validate(artifact)
        assert result.ok
        assert result.snapshot.metadata.counts.customers == 1
        assert result.snapshot.metadata.counts.bills == 1

    def test_non_string_checksum(self, validator):
        document = json.loads(make_artifact(VALID_BODY))
        document["metadata"]["checksum"] = 12345

        result = validator.validate(json.dumps(document))

        assert not result.ok
        assert result.reason == ErrorKind.MALFORMED_FORMAT

    def test_non_string_checksum_algorithm(self, validator):
        result = validator.validate(make_artifact(VALID_BODY, checksumAlgorithm=["sha256"]))
        assert result.reason == ErrorKind.MALFORMED_FORMAT

    def test_non_string_legacy_checksum(self, validator):
        document = {"version": "2.0", "timestamp": "2023-05-01T08:00:00Z", "data": VALID_BODY, "metadata": {"checksum": {"x": 1}}}
        result = validator.validate(json.dumps(document))
        assert result.reason == ErrorKind.MALFORMED_FORMAT

    def test_schema_failure_after_checksum(self, validator):
        body = {"customers": [], "bills": [{"id": "b1"}]}
        result = validator.validate(make_artifact(body))
        assert result.reason == ErrorKind.MALFORMED_FORMAT


class TestLegacyLayouts:
    """Artifacts written by the original billing app."""

    def test_simple_layout_is_unverified(self, validator):
        document = {"version": "1.0", "createdAt": "2023-05-01T08:00:00Z", "data": VALID_BODY}

        result = validator.validate(json.dumps(document))

        assert result.ok
        assert [i.kind for i in result.issues] == [ErrorKind.CHECKSUM_UNVERIFIED]
        assert result.issues[0].severity == "warning"
        assert result.snapshot.created_at == "2023-05-01T08:00:00Z"

    def test_enhanced_layout_with_rolling_hash(self, validator):
        document = {
            "version": "2.0",
            "timestamp": "2023-05-01T08:00:00Z",
            "data": VALID_BODY,
            "metadata": {"checksum": legacy_fingerprint(VALID_BODY)},
        }

        result = validator.validate(json.dumps(document))

        assert result.ok
        assert result.issues == []

    def test_enhanced_layout_tampered(self, validator):
        tampered = json.loads(json.dumps(VALID_BODY))
        tampered["payments"][0]["amount"] = 4000.0
        document = {
            "version": "2.0",
            "timestamp": "2023-05-01T08:00:00Z",
            "data": tampered,
            "metadata": {"checksum": legacy_fingerprint(VALID_BODY)},
        }

        result = validator.validate(json.dumps(document))

        assert result.reason == ErrorKind.CHECKSUM_MISMATCH

    def test_comprehensive_layout_keeps_latest_bill_copy(self, validator):
        document = {
            "version": "1.0",
            "timestamp": "2023-05-01T08:00:00Z",
            "customers": [{"id": "c1", "name": "Asha"}],
            "bills": [
                {"id": "b1", "customerId": "c1", "grandTotal": 100.0, "createdAt": "2023-04-01T00:00:00Z"},
                {"id": "b1", "customerId": "c1", "grandTotal": 120.0, "createdAt": "2023-04-02T00:00:00Z"},
            ],
            "payments": [],
        }

        result = validator.validate(json.dumps(document))

        assert result.ok
        assert len(result.snapshot.body.bills) == 1
        assert result.snapshot.body.bills[0].grand_total == 120.0
        assert result.issues_of(ErrorKind.DUPLICATE_ID) == []

    def test_comprehensive_layout_with_out_of_range_timestamp(self, validator):
        document = {
            "version": "1.0",
            "timestamp": "2023-05-01T08:00:00Z",
            "customers": [{"id": "c1", "name": "Asha"}],
            "bills": [
                {"id": "b", "customerId": "c1", "grandTotal": 100.0, "createdAt": 1e20},
                {"id": "b", "customerId": "c1", "grandTotal": 120.0, "createdAt": "2023-04-02T00:00:00Z"},
            ],
        }

        result = validator.validate(json.dumps(document))

        assert result.ok
        assert len(result.snapshot.body.bills) == 1
        assert result.snapshot.body.bills[0].grand_total == 120.0


class TestStructuralIssues:
    """Orphaned references and duplicate ids are reported, never fatal."""

    BODY = {
        "customers": [{"id": "c1", "name": "Asha"}],
        "bills": [
            {"id": "b1", "customerId": "c1", "grandTotal": 10.0},
            {"id": "b1", "customerId": "c1", "grandTotal": 10.0},
            {"id": "b2", "customerId": "ghost", "grandTotal": 20.0},
        ],
        "payments": [{"id": "p1", "customerId": "ghost", "amount": 5.0}],
    }

    def test_all_findings_reported(self, validator):
        result = validator.validate(make_artifact(self.BODY))

        assert result.ok
        orphans = result.issues_of(ErrorKind.ORPHANED_REFERENCE)
        assert {(i.record_type, i.record_id) for i in orphans} == {("bill", "b2"), ("payment", "p1")}
        duplicates = result.issues_of(ErrorKind.DUPLICATE_ID)
        assert [i.record_id for i in duplicates] == ["b1"]
        assert result.warning_count == 3

    def test_orphans_are_not_dropped(self, validator):
        result = validator.validate(make_artifact(self.BODY))
        assert len(result.snapshot.body.bills) == 3
        assert len(result.snapshot.body.payments) == 1

    def test_structural_pass_can_be_skipped(self, validator):
        result = validator.validate(make_artifact(self.BODY), structural=False)
        assert result.ok
        assert result.issues == []


class TestEncryptedArtifacts:
    """Password-protected backups."""

    @pytest.fixture
    def sealed(self) -> bytes:
        envelope = encrypt_artifact(
            make_artifact(VALID_BODY),
            "s3cret",
            iterations=10_000,
            schema_version="2.0.0",
            created_at="2024-06-01T12:00:00+00:00",
        )
        return json.dumps(envelope).encode("utf-8")

    def test_password_required(self, validator, sealed):
        result = validator.validate(sealed)
        assert result.reason == ErrorKind.PASSWORD_REQUIRED

    def test_wrong_password(self, validator, sealed):
        result = validator.validate(sealed, password="guess")
        assert result.reason == ErrorKind.DECRYPTION_FAILED

    def test_right_password(self, validator, sealed):
        result = validator.validate(sealed, password="s3cret")
        assert result.ok
        assert result.snapshot.fingerprint == sha256_fingerprint(VALID_BODY)

    def test_tampered_payload(self, validator, sealed):
        envelope = json.loads(sealed)
        payload = envelope["payload"]
        envelope["payload"] = ("A" if payload[0] != "A" else "B") + payload[1:]
        result = validator.validate(json.dumps(envelope), password="s3cret")
        assert result.reason == ErrorKind.DECRYPTION_FAILED
