"""Read-only access to state snapshots kept in S3."""

import json
import logging

import boto3
from botocore.exceptions import ClientError

from stackplan.errors import DocumentError
from stackplan.loader import StateSnapshot, parse_state

logger = logging.getLogger(__name__)


class S3StateStore:
    """Loads ``<prefix>/<stack>/<environment>.json`` objects from a bucket."""

    def __init__(self, bucket: str, prefix: str = "", region: str | None = None):
        if not bucket:
            raise ValueError("bucket name is required")
        self._bucket = bucket
        self._prefix = prefix.strip("/")
        self._client = boto3.client("s3", **({"region_name": region} if region else {}))

    def key_for(self, stack: str, environment: str) -> str:
        parts = [p for p in (self._prefix, stack, f"{environment}.json") if p]
        return "/".join(parts)

    def load(self, stack: str, environment: str) -> StateSnapshot:
        """Fetch and parse the snapshot. A missing object means a first deployment."""
        key = self.key_for(stack, environment)
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                logger.info("No state at s3://%s/%s; treating every resource as new", self._bucket, key)
                return StateSnapshot(stack=stack, environment=environment)
            raise

        body = response["Body"].read()
        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise DocumentError(f"s3://{self._bucket}/{key} is not valid JSON: {exc}") from exc

        snapshot = parse_state(data)
        logger.debug("Loaded %d resource(s) from s3://%s/%s", len(snapshot.resources), self._bucket, key)
        return snapshot

    def list_environments(self, stack: str) -> list[str]:
        """Environments with a stored snapshot for the stack."""
        prefix = "/".join(p for p in (self._prefix, stack) if p) + "/"
        paginator = self._client.get_paginator("list_objects_v2")
        environments = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                name = obj["Key"][len(prefix):]
                if "/" not in name and name.endswith(".json"):
                    environments.append(name[: -len(".json")])
        return sorted(environments)
