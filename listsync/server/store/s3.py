"""S3 record store.

Stores workspace records as JSON objects in S3 with optional namespace prefix::

    s3://{bucket}/{prefix}/workspaces/{workspace_id}.json
    s3://{bucket}/{prefix}/codes/{CODE}

A single ``put_object`` replaces an object atomically, so readers see either
the previous or the new record, never a partial one.

Uses ``anyio.to_thread.run_sync`` to run boto3 calls in the thread pool,
matching the same async pattern as LocalRecordStore.
"""

from __future__ import annotations

from functools import partial
from typing import Any

import boto3
from anyio import to_thread
from botocore.config import Config

from listsync.models.records import WorkspaceRecord
from listsync.server.store.base import is_valid_key


def _create_s3_client(
    endpoint_url: str | None,
    access_key: str | None,
    secret_key: str | None,
    region: str | None = None,
    path_style: bool = False,
) -> Any:
    """boto3 S3 client for AWS or an S3-compatible endpoint.

    Credentials left as ``None`` fall back to boto3's default chain.  Checksums
    are only sent when an operation requires them, which keeps MinIO and other
    S3-compatible servers happy; ``path_style`` is needed by most of them too.
    """
    config = Config(
        request_checksum_calculation="when_required",
        response_checksum_validation="when_required",
        s3={"addressing_style": "path" if path_style else "auto"},
    )

    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        region_name=region,
        config=config,
    )


class S3RecordStore:
    """S3 implementation of the RecordStore protocol.

    Where ``key_prefix`` is ``{prefix}/`` if prefix is set, or empty string.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        prefix: str | None = None,
        region: str | None = None,
        path_style: bool = False,
    ) -> None:
        self._bucket = bucket
        self._client = _create_s3_client(endpoint_url, access_key, secret_key, region=region, path_style=path_style)
        self._key_prefix = f"{prefix}/" if prefix else ""

    def _workspace_key(self, workspace_id: str) -> str:
        if not is_valid_key(workspace_id):
            msg = f"Invalid workspace id: {workspace_id!r}"
            raise FileNotFoundError(msg)
        return f"{self._key_prefix}workspaces/{workspace_id}.json"

    def _code_key(self, code: str) -> str:
        if not is_valid_key(code):
            msg = f"Invalid workspace code: {code!r}"
            raise FileNotFoundError(msg)
        return f"{self._key_prefix}codes/{code}"

    # -- Workspaces ------------------------------------------------------------

    async def write_workspace(self, workspace: WorkspaceRecord) -> None:
        data = workspace.model_dump_json(by_alias=True, indent=2)
        await self._put(self._workspace_key(workspace.id), data, "application/json")

    async def read_workspace(self, workspace_id: str) -> WorkspaceRecord:
        body = await to_thread.run_sync(partial(self._read_text, self._workspace_key(workspace_id)))
        return WorkspaceRecord.model_validate_json(body)

    async def exists(self, workspace_id: str) -> bool:
        try:
            key = self._workspace_key(workspace_id)
        except FileNotFoundError:
            return False
        try:
            await to_thread.run_sync(partial(self._client.head_object, Bucket=self._bucket, Key=key))
        except self._client.exceptions.ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey"):
                return False
            raise
        else:
            return True

    async def list_workspace_ids(self) -> list[str]:
        return await to_thread.run_sync(self._list_workspace_ids)

    # -- Code index ------------------------------------------------------------

    async def write_code(self, code: str, workspace_id: str) -> None:
        await self._put(self._code_key(code), workspace_id, "text/plain")

    async def read_code(self, code: str) -> str:
        body = await to_thread.run_sync(partial(self._read_text, self._code_key(code)))
        return body.strip()

    # -- Helpers ---------------------------------------------------------------

    async def _put(self, key: str, data: str, content_type: str) -> None:
        await to_thread.run_sync(
            partial(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data.encode("utf-8"),
                ContentType=content_type,
            )
        )

    def _read_text(self, key: str) -> str:
        """Fetch an object and decode its body.

        Runs as one thread-pool job: the streaming body is consumed on the
        thread that issued ``get_object``.
        """
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
        except self._client.exceptions.NoSuchKey:
            msg = f"Object not found: {key}"
            raise FileNotFoundError(msg) from None
        return resp["Body"].read().decode("utf-8")

    def _list_workspace_ids(self) -> list[str]:
        prefix = f"{self._key_prefix}workspaces/"
        paginator = self._client.get_paginator("list_objects_v2")
        ids: list[str] = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                name = obj["Key"][len(prefix) :]
                if name.endswith(".json") and "/" not in name:
                    ids.append(name.removesuffix(".json"))
        return sorted(ids)
