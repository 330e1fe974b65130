"""FastAPI dependencies."""

from claim_controller.db.dynamodb import DynamoDBClient, db_client


def get_db() -> DynamoDBClient:
    """Object store client used by the request handlers."""
    return db_client
