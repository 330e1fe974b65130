"""DynamoDB object store for claims, pools and sandboxes.

Every object lives in a single table under ``PK=<KIND>#<namespace>#<name>``
and ``SK=META``. Each write bumps a numeric ``resource_version`` and
version-checked writes use conditional expressions on it.
"""

import time
import uuid
from typing import Optional
from decimal import Decimal
import boto3
from botocore.exceptions import ClientError
from claim_controller.core.config import settings
from claim_controller.core.errors import ConflictError, NotFoundError, StoreError
from claim_controller.models.claim import Claim, ClaimStatus, SandboxPool
from claim_controller.models.condition import Condition
from claim_controller.models.sandbox import (
    LABEL_CLAIMED_BY,
    LABEL_CLAIMED_BY_NAME,
    Sandbox,
    SandboxPhase,
)

KIND_CLAIM = "claim"
KIND_POOL = "pool"
KIND_SANDBOX = "sandbox"

_PREFIXES = {KIND_CLAIM: "CLAIM", KIND_POOL: "POOL", KIND_SANDBOX: "SBX"}


def _key(kind: str, namespace: str, name: str) -> dict:
    return {"PK": f"{_PREFIXES[kind]}#{namespace}#{name}", "SK": "META"}


def _to_ddb(value):
    """Convert Python values into types boto3 accepts (floats become Decimal)."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_ddb(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_ddb(v) for v in value]
    return value


def _from_ddb(value):
    """Convert DynamoDB Decimals back into int or float."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_ddb(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_ddb(v) for v in value]
    return value


class DynamoDBClient:
    """DynamoDB client for controller objects."""

    def __init__(self):
        """Initialize DynamoDB client."""
        session_kwargs = {"region_name": settings.aws_region}

        if settings.aws_access_key_id and settings.aws_secret_access_key:
            session_kwargs["aws_access_key_id"] = settings.aws_access_key_id
            session_kwargs["aws_secret_access_key"] = settings.aws_secret_access_key

        self.dynamodb = boto3.resource("dynamodb", **session_kwargs)

        if settings.ddb_endpoint_url:
            # Override for local DynamoDB
            self.dynamodb = boto3.resource(
                "dynamodb",
                endpoint_url=settings.ddb_endpoint_url,
                region_name=settings.aws_region,
                aws_access_key_id="local",
                aws_secret_access_key="local",
            )

        self.table = self.dynamodb.Table(settings.ddb_table_name)

    # ------------------------------------------------------------------
    # Item conversion
    # ------------------------------------------------------------------

    def _claim_to_item(self, claim: Claim) -> dict:
        item = {
            **_key(KIND_CLAIM, claim.namespace, claim.name),
            "kind": KIND_CLAIM,
            "namespace": claim.namespace,
            "name": claim.name,
            "uid": claim.uid,
            "generation": claim.generation,
            "pool_name": claim.pool_name,
            "status": claim.status.to_dict(),
        }

        # Optional fields
        if claim.replicas is not None:
            item["replicas"] = claim.replicas
        if claim.claim_timeout_seconds is not None:
            item["claim_timeout_seconds"] = claim.claim_timeout_seconds
        if claim.ttl_after_completed_seconds is not None:
            item["ttl_after_completed_seconds"] = claim.ttl_after_completed_seconds

        return _to_ddb(item)

    def _claim_from_item(self, item: dict) -> Claim:
        item = _from_ddb(item)
        return Claim(
            namespace=item["namespace"],
            name=item["name"],
            pool_name=item["pool_name"],
            uid=item.get("uid", ""),
            generation=int(item.get("generation", 1)),
            replicas=int(item["replicas"]) if item.get("replicas") is not None else None,
            claim_timeout_seconds=item.get("claim_timeout_seconds"),
            ttl_after_completed_seconds=item.get("ttl_after_completed_seconds"),
            resource_version=str(item.get("resource_version", "")),
            status=ClaimStatus.from_dict(item.get("status")),
        )

    def _pool_to_item(self, pool: SandboxPool) -> dict:
        return {
            **_key(KIND_POOL, pool.namespace, pool.name),
            "kind": KIND_POOL,
            "namespace": pool.namespace,
            "name": pool.name,
            "uid": pool.uid,
        }

    def _pool_from_item(self, item: dict) -> SandboxPool:
        item = _from_ddb(item)
        return SandboxPool(
            namespace=item["namespace"],
            name=item["name"],
            uid=item.get("uid", ""),
            resource_version=str(item.get("resource_version", "")),
        )

    def _sandbox_to_item(self, sandbox: Sandbox) -> dict:
        item = {
            **_key(KIND_SANDBOX, sandbox.namespace, sandbox.name),
            "kind": KIND_SANDBOX,
            "namespace": sandbox.namespace,
            "name": sandbox.name,
            "uid": sandbox.uid,
            "labels": dict(sandbox.labels),
            "deletion_requested": sandbox.deletion_requested,
            "phase": sandbox.phase.value,
            "pod_ip": sandbox.pod_ip,
            "conditions": [c.to_dict() for c in sandbox.conditions],
            "paused": sandbox.paused,
        }

        # Index keys must be absent rather than empty
        if sandbox.owner_pool:
            item["owner_pool"] = sandbox.owner_pool
        if sandbox.labels.get(LABEL_CLAIMED_BY):
            item["claimed_by"] = sandbox.labels[LABEL_CLAIMED_BY]
        if sandbox.labels.get(LABEL_CLAIMED_BY_NAME):
            item["claimed_by_name"] = sandbox.labels[LABEL_CLAIMED_BY_NAME]
        if sandbox.shutdown_time is not None:
            item["shutdown_time"] = sandbox.shutdown_time

        return _to_ddb(item)

    def _sandbox_from_item(self, item: dict) -> Sandbox:
        item = _from_ddb(item)
        return Sandbox(
            namespace=item["namespace"],
            name=item["name"],
            uid=item.get("uid", ""),
            resource_version=str(item.get("resource_version", "")),
            labels=item.get("labels") or {},
            owner_pool=item.get("owner_pool"),
            deletion_requested=bool(item.get("deletion_requested", False)),
            shutdown_time=int(item["shutdown_time"]) if item.get("shutdown_time") is not None else None,
            phase=SandboxPhase(item.get("phase", SandboxPhase.PENDING.value)),
            pod_ip=item.get("pod_ip", ""),
            conditions=[Condition.from_dict(c) for c in item.get("conditions", [])],
            paused=bool(item.get("paused", False)),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _get_item(self, kind: str, namespace: str, name: str) -> Optional[dict]:
        try:
            response = self.table.get_item(Key=_key(kind, namespace, name))
            return response.get("Item")
        except ClientError as e:
            raise StoreError(f"DynamoDB error getting {kind} {namespace}/{name}: {e}")

    async def get_claim(self, namespace: str, name: str) -> Optional[Claim]:
        """Get claim by namespaced name."""
        item = self._get_item(KIND_CLAIM, namespace, name)
        return self._claim_from_item(item) if item else None

    async def get_pool(self, namespace: str, name: str) -> Optional[SandboxPool]:
        """Get pool descriptor by namespaced name."""
        item = self._get_item(KIND_POOL, namespace, name)
        return self._pool_from_item(item) if item else None

    async def get_sandbox(self, namespace: str, name: str) -> Optional[Sandbox]:
        """Get sandbox by namespaced name."""
        item = self._get_item(KIND_SANDBOX, namespace, name)
        return self._sandbox_from_item(item) if item else None

    def _query_all(self, what: str, **query_kwargs) -> list[dict]:
        """Run a query following pagination until exhausted."""
        items = []
        try:
            while True:
                response = self.table.query(**query_kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    return items
                query_kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            raise StoreError(f"DynamoDB error querying {what}: {e}")

    async def list_claims(self) -> list[Claim]:
        """List every claim."""
        items = self._query_all(
            "claims",
            IndexName=settings.ddb_kind_index_name,
            KeyConditionExpression="#kind = :kind",
            ExpressionAttributeNames={"#kind": "kind"},
            ExpressionAttributeValues={":kind": KIND_CLAIM},
        )
        return [self._claim_from_item(item) for item in items]

    async def list_sandboxes(self) -> list[Sandbox]:
        """List every sandbox."""
        items = self._query_all(
            "sandboxes",
            IndexName=settings.ddb_kind_index_name,
            KeyConditionExpression="#kind = :kind",
            ExpressionAttributeNames={"#kind": "kind"},
            ExpressionAttributeValues={":kind": KIND_SANDBOX},
        )
        return [self._sandbox_from_item(item) for item in items]

    async def list_claimed_sandboxes(
        self, namespace: str, claim_uid: str, claim_name: str
    ) -> list[Sandbox]:
        """List sandboxes bound to a claim by both the claim UID and the claim name."""
        items = self._query_all(
            "claimed sandboxes",
            IndexName=settings.ddb_claim_index_name,
            KeyConditionExpression="claimed_by = :uid",
            FilterExpression="#ns = :ns AND claimed_by_name = :name",
            ExpressionAttributeNames={"#ns": "namespace"},
            ExpressionAttributeValues={
                ":uid": claim_uid,
                ":ns": namespace,
                ":name": claim_name,
            },
        )
        return [self._sandbox_from_item(item) for item in items]

    async def list_pool_sandboxes(self, namespace: str, pool_name: str) -> list[Sandbox]:
        """List sandboxes still owned by a pool."""
        items = self._query_all(
            "pool sandboxes",
            IndexName=settings.ddb_pool_index_name,
            KeyConditionExpression="owner_pool = :pool",
            FilterExpression="#ns = :ns",
            ExpressionAttributeNames={"#ns": "namespace"},
            ExpressionAttributeValues={":pool": pool_name, ":ns": namespace},
        )
        return [self._sandbox_from_item(item) for item in items]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _put(self, kind: str, item: dict) -> tuple[str, str]:
        """
        Upsert an item, bumping its resource version.

        An item without a UID keeps the stored one, or gets a new one on create.

        Returns:
            Tuple of (resource_version, uid)
        """
        try:
            existing = self.table.get_item(Key={"PK": item["PK"], "SK": item["SK"]}).get("Item")
            version = int(existing["resource_version"]) + 1 if existing else 1
            if not item.get("uid"):
                item["uid"] = (existing or {}).get("uid") or str(uuid.uuid4())
            item["resource_version"] = version
            item["updated_at"] = int(time.time())
            self.table.put_item(Item=item)
            return str(version), item["uid"]
        except ClientError as e:
            raise StoreError(f"DynamoDB error putting {kind}: {e}")

    async def put_claim(self, claim: Claim) -> Claim:
        """Create or replace a claim (spec and status)."""
        claim.resource_version, claim.uid = self._put(KIND_CLAIM, self._claim_to_item(claim))
        return claim

    async def put_pool(self, pool: SandboxPool) -> SandboxPool:
        """Create or replace a pool descriptor."""
        pool.resource_version, pool.uid = self._put(KIND_POOL, self._pool_to_item(pool))
        return pool

    async def put_sandbox(self, sandbox: Sandbox) -> Sandbox:
        """Create or replace a sandbox."""
        sandbox.resource_version, sandbox.uid = self._put(KIND_SANDBOX, self._sandbox_to_item(sandbox))
        return sandbox

    async def update_claim_status(self, claim: Claim, status: ClaimStatus) -> str:
        """
        Persist a claim status if the stored claim is still at ``claim.resource_version``.

        Returns:
            The new resource version

        Raises:
            NotFoundError: The claim no longer exists
            ConflictError: The stored claim has moved to a newer version
        """
        try:
            response = self.table.update_item(
                Key=_key(KIND_CLAIM, claim.namespace, claim.name),
                UpdateExpression="SET #status = :status, updated_at = :now ADD resource_version :one",
                ConditionExpression="attribute_exists(PK) AND resource_version = :rv",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={
                    ":status": _to_ddb(status.to_dict()),
                    ":now": int(time.time()),
                    ":one": 1,
                    ":rv": int(claim.resource_version or 0),
                },
                ReturnValues="UPDATED_NEW",
            )
            return str(int(response["Attributes"]["resource_version"]))

        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                # Condition failed - check why
                if self._get_item(KIND_CLAIM, claim.namespace, claim.name) is None:
                    raise NotFoundError(f"Claim {claim.key} not found")
                raise ConflictError(
                    f"Claim {claim.key} was modified (expected resource version {claim.resource_version})"
                )
            raise StoreError(f"DynamoDB error updating claim status: {e}")

    async def bind_sandbox(self, sandbox: Sandbox, claim: Claim) -> Optional[Sandbox]:
        """
        Atomically bind a sandbox to a claim using a version-checked write.

        Sets both binding labels and releases pool ownership.
        Returns the bound Sandbox if successful, None if the sandbox changed
        or was bound elsewhere in the meantime.
        """
        try:
            response = self.table.update_item(
                Key=_key(KIND_SANDBOX, sandbox.namespace, sandbox.name),
                UpdateExpression="""
                    SET claimed_by = :uid,
                        claimed_by_name = :name,
                        labels.#by = :uid,
                        labels.#by_name = :name,
                        updated_at = :now
                    REMOVE owner_pool
                    ADD resource_version :one
                """,
                ConditionExpression="""
                    attribute_exists(PK) AND
                    resource_version = :rv AND
                    attribute_not_exists(claimed_by)
                """,
                ExpressionAttributeNames={
                    "#by": LABEL_CLAIMED_BY,
                    "#by_name": LABEL_CLAIMED_BY_NAME,
                },
                ExpressionAttributeValues={
                    ":uid": claim.uid,
                    ":name": claim.name,
                    ":now": int(time.time()),
                    ":one": 1,
                    ":rv": int(sandbox.resource_version or 0),
                },
                ReturnValues="ALL_NEW",
            )

            return self._sandbox_from_item(response["Attributes"])

        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                # Sandbox changed, deleted or already bound
                return None
            raise StoreError(f"DynamoDB error binding sandbox: {e}")

    async def delete_claim(self, namespace: str, name: str) -> bool:
        """Delete a claim. Returns False if it was already gone."""
        return self._delete(KIND_CLAIM, namespace, name)

    def _delete(self, kind: str, namespace: str, name: str) -> bool:
        try:
            response = self.table.delete_item(
                Key=_key(kind, namespace, name),
                ReturnValues="ALL_OLD",
            )
            return "Attributes" in response
        except ClientError as e:
            raise StoreError(f"DynamoDB error deleting {kind} {namespace}/{name}: {e}")

    async def create_table(self):
        """Create DynamoDB table with GSIs (for local development)."""
        throughput = {"ReadCapacityUnits": 5, "WriteCapacityUnits": 5}
        try:
            table = self.dynamodb.create_table(
                TableName=settings.ddb_table_name,
                KeySchema=[
                    {"AttributeName": "PK", "KeyType": "HASH"},
                    {"AttributeName": "SK", "KeyType": "RANGE"},
                ],
                AttributeDefinitions=[
                    {"AttributeName": "PK", "AttributeType": "S"},
                    {"AttributeName": "SK", "AttributeType": "S"},
                    {"AttributeName": "kind", "AttributeType": "S"},
                    {"AttributeName": "claimed_by", "AttributeType": "S"},
                    {"AttributeName": "owner_pool", "AttributeType": "S"},
                ],
                GlobalSecondaryIndexes=[
                    {
                        "IndexName": settings.ddb_kind_index_name,
                        "KeySchema": [
                            {"AttributeName": "kind", "KeyType": "HASH"},
                            {"AttributeName": "PK", "KeyType": "RANGE"},
                        ],
                        "Projection": {"ProjectionType": "ALL"},
                        "ProvisionedThroughput": throughput,
                    },
                    {
                        "IndexName": settings.ddb_claim_index_name,
                        "KeySchema": [
                            {"AttributeName": "claimed_by", "KeyType": "HASH"},
                            {"AttributeName": "PK", "KeyType": "RANGE"},
                        ],
                        "Projection": {"ProjectionType": "ALL"},
                        "ProvisionedThroughput": throughput,
                    },
                    {
                        "IndexName": settings.ddb_pool_index_name,
                        "KeySchema": [
                            {"AttributeName": "owner_pool", "KeyType": "HASH"},
                            {"AttributeName": "PK", "KeyType": "RANGE"},
                        ],
                        "Projection": {"ProjectionType": "ALL"},
                        "ProvisionedThroughput": throughput,
                    },
                ],
                BillingMode="PROVISIONED",
                ProvisionedThroughput=throughput,
            )
            table.wait_until_exists()
            print(f"✅ Created table: {settings.ddb_table_name}")

        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceInUseException":
                raise StoreError(f"Error creating table: {e}")


# Global DynamoDB client instance
db_client = DynamoDBClient()
