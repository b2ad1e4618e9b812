from typing import Optional


class OperationError(Exception):
    """Base class for rejections of a single operation.

    Operation errors are recoverable: the account is left untouched and the
    caller moves on to the next operation.
    """

    error_code = "OPERATION_REJECTED"

    def __init__(self, client: int, tx: int, message: str):
        super().__init__(message)
        self.client = client
        self.tx = tx
        self.message = message


class AccountLocked(OperationError):
    """Raised for any operation against an account frozen by a chargeback."""

    error_code = "ACCOUNT_LOCKED"

    def __init__(self, client: int, tx: int):
        super().__init__(client, tx, f"Account {client} is locked")


class UnknownReferencedTransaction(OperationError):
    """Raised when a dispute, resolve or chargeback names a tx the account never recorded."""

    error_code = "UNKNOWN_TRANSACTION"

    def __init__(self, client: int, tx: int):
        super().__init__(client, tx, f"No transaction {tx} found for client {client}")


class TransactionNotDisputed(OperationError):
    error_code = "TRANSACTION_NOT_DISPUTED"

    def __init__(self, client: int, tx: int):
        super().__init__(client, tx, f"Transaction {tx} for client {client} is not under dispute")


class TransactionAlreadyDisputed(OperationError):
    error_code = "TRANSACTION_ALREADY_DISPUTED"

    def __init__(self, client: int, tx: int):
        super().__init__(client, tx, f"Transaction {tx} for client {client} is already disputed")


class InsufficientFunds(OperationError):
    error_code = "INSUFFICIENT_FUNDS"

    def __init__(self, client: int, tx: int):
        super().__init__(client, tx, "Insufficient funds")


class BalanceLimitExceeded(OperationError):
    """Raised when an operation would push a balance outside the supported fixed-point range."""

    error_code = "BALANCE_LIMIT_EXCEEDED"

    def __init__(self, client: int, tx: int):
        super().__init__(client, tx, f"Operation would exceed the balance limit for client {client}")


class RecordDecodeError(Exception):
    """A raw input record could not be decoded into an operation at all.

    This is a structural failure of the input, not a business rule rejection,
    and is never an OperationError.
    """

    def __init__(self, line: Optional[int], detail: str):
        location = f"line {line}" if line is not None else "record"
        super().__init__(f"Malformed {location}: {detail}")
        self.line = line
        self.detail = detail
