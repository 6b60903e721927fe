"""Artifact stores the published report and history are written to."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from botocore.exceptions import ClientError


class ArtifactStore(Protocol):
    """Key/value storage for JSON artifacts. Every write replaces the whole object."""

    def read_json(self, key: str) -> Any | None: ...

    def write_json(self, key: str, payload: Any, cache_control: str | None = None) -> str: ...

    def delete(self, key: str) -> None: ...


def dump_json(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"))


class LocalArtifactStore:
    """Stores artifacts as files below *root*.

    Writes go to a temporary file in the target directory that is then moved
    into place, so a reader never sees a partially written artifact.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Key escapes the store root: {key}")
        return path

    def read_json(self, key: str) -> Any | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def write_json(self, key: str, payload: Any, cache_control: str | None = None) -> str:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(dump_json(payload))
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return str(path)

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


class S3ArtifactStore:
    """Stores artifacts in an S3 compatible bucket (e.g. Cloudflare R2)."""

    def __init__(self, client: Any, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    def read_json(self, key: str) -> Any | None:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in {"NoSuchKey", "404", "NotFound"}:
                return None
            raise
        body = response["Body"].read()
        return json.loads(body)

    def write_json(self, key: str, payload: Any, cache_control: str | None = None) -> str:
        extra: dict[str, Any] = {}
        if cache_control:
            extra["CacheControl"] = cache_control
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=dump_json(payload).encode("utf-8"),
            ContentType="application/json",
            **extra,
        )
        return f"s3://{self.bucket}/{key}"

    def delete(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)
