import io
import json
from unittest import mock

import pytest
from botocore.exceptions import ClientError

from parcel_atlas.io.storage import LocalArtifactStore, S3ArtifactStore


def test_local_store_round_trip(tmp_path):
    store = LocalArtifactStore(tmp_path)
    location = store.write_json("prefix/report.json", {"l": [[0, 0, "a", 1]]})
    assert location.endswith("report.json")
    assert store.read_json("prefix/report.json") == {"l": [[0, 0, "a", 1]]}


def test_local_store_missing_key_reads_none(tmp_path):
    assert LocalArtifactStore(tmp_path).read_json("nothing.json") is None


def test_local_store_replaces_without_leftovers(tmp_path):
    store = LocalArtifactStore(tmp_path)
    store.write_json("report.json", {"v": 1})
    store.write_json("report.json", {"v": 2})
    assert store.read_json("report.json") == {"v": 2}
    assert [p.name for p in tmp_path.iterdir()] == ["report.json"]


def test_local_store_keeps_previous_artifact_when_serialisation_fails(tmp_path):
    store = LocalArtifactStore(tmp_path)
    store.write_json("report.json", {"v": 1})
    with pytest.raises(TypeError):
        store.write_json("report.json", {"v": object()})
    assert store.read_json("report.json") == {"v": 1}
    assert [p.name for p in tmp_path.iterdir()] == ["report.json"]


def test_local_store_delete_is_idempotent(tmp_path):
    store = LocalArtifactStore(tmp_path)
    store.write_json("a.json", [])
    store.delete("a.json")
    store.delete("a.json")
    assert store.read_json("a.json") is None


def test_local_store_rejects_escaping_keys(tmp_path):
    with pytest.raises(ValueError):
        LocalArtifactStore(tmp_path / "root").write_json("../outside.json", {})


def test_s3_store_puts_json_objects():
    client = mock.Mock()
    store = S3ArtifactStore(client, "reports")
    location = store.write_json("p/report.json", {"g": 1}, cache_control="public, max-age=60")

    assert location == "s3://reports/p/report.json"
    kwargs = client.put_object.call_args.kwargs
    assert kwargs["Bucket"] == "reports"
    assert kwargs["Key"] == "p/report.json"
    assert kwargs["ContentType"] == "application/json"
    assert kwargs["CacheControl"] == "public, max-age=60"
    assert json.loads(kwargs["Body"]) == {"g": 1}


def test_s3_store_reads_and_handles_missing_keys():
    client = mock.Mock()
    client.get_object.return_value = {"Body": io.BytesIO(b'{"entries": []}')}
    store = S3ArtifactStore(client, "reports")
    assert store.read_json("history-index.json") == {"entries": []}

    client.get_object.side_effect = ClientError(
        {"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject"
    )
    assert store.read_json("history-index.json") is None


def test_s3_store_propagates_other_errors():
    client = mock.Mock()
    client.get_object.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "no"}}, "GetObject"
    )
    with pytest.raises(ClientError):
        S3ArtifactStore(client, "reports").read_json("x.json")
