"""Custom exceptions for dynamo_denorm store and engine operations."""


class DenormError(Exception):
    """Base exception for all dynamo_denorm errors."""


# DynamoDB specific exceptions
class DynamoDBError(DenormError):
    """Base exception for DynamoDB operations."""


class DynamoDBThroughputError(DynamoDBError):
    """Raised when DynamoDB provisioned throughput is exceeded."""


class DynamoDBServerError(DynamoDBError):
    """Raised when DynamoDB has an internal server error."""


class DynamoDBAccessError(DynamoDBError):
    """Raised when access to DynamoDB is denied."""


class DynamoDBResourceNotFoundError(DynamoDBError):
    """Raised when a DynamoDB resource is not found."""


class DynamoDBValidationError(DynamoDBError):
    """Raised when DynamoDB request validation fails."""


class ConditionalCheckFailedError(DynamoDBError):
    """Raised when a conditional write is rejected."""


class TransactionError(DynamoDBError):
    """Raised when a batched transactional write is cancelled."""


# Caller configuration errors
class MissingIdentifierError(DenormError, ValueError):
    """Raised when a document id or collection id cannot be determined."""
