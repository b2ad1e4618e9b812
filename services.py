from typing import Iterable, List, Optional

import structlog

from errors import (
    AccountLocked,
    BalanceLimitExceeded,
    InsufficientFunds,
    OperationError,
    TransactionAlreadyDisputed,
    TransactionNotDisputed,
    UnknownReferencedTransaction,
)
from models import (
    Account,
    AccountSnapshot,
    AmountOperation,
    BALANCE_LIMIT,
    Operation,
    OperationType,
    RecordedOperation,
    ReferenceOperation,
    ReplaySummary,
)
from repositories import AccountRepository

logger = structlog.get_logger()


class OperationInterpreter:
    """Applies a single operation to the account it targets.

    Every handler checks all of its preconditions before touching the account,
    so a rejected operation leaves balances and history exactly as they were.
    """

    def execute(self, operation: Operation, account: Account) -> None:
        if account.locked:
            raise AccountLocked(operation.client, operation.tx)

        if operation.type == OperationType.deposit:
            self._process_deposit(operation, account)
        elif operation.type == OperationType.withdrawal:
            self._process_withdrawal(operation, account)
        elif operation.type == OperationType.dispute:
            self._process_dispute(operation, account)
        elif operation.type == OperationType.resolve:
            self._process_resolve(operation, account)
        elif operation.type == OperationType.chargeback:
            self._process_chargeback(operation, account)
        else:
            raise TypeError(f"Unsupported operation type: {operation.type!r}")

    def _process_deposit(self, operation: AmountOperation, account: Account) -> None:
        available = account.available + operation.amount
        self._check_limit(operation, available, account.held)

        account.available = available
        account.history[operation.tx] = RecordedOperation(amount=operation.amount)

        logger.debug(
            "Deposit processed",
            client=account.client,
            tx=operation.tx,
            amount=str(operation.amount),
            available=str(account.available),
        )

    def _process_withdrawal(self, operation: AmountOperation, account: Account) -> None:
        if account.available < operation.amount:
            raise InsufficientFunds(operation.client, operation.tx)

        account.available -= operation.amount
        account.history[operation.tx] = RecordedOperation(amount=operation.amount)

        logger.debug(
            "Withdrawal processed",
            client=account.client,
            tx=operation.tx,
            amount=str(operation.amount),
            available=str(account.available),
        )

    def _check_limit(self, operation: Operation, available, held) -> None:
        if abs(available) >= BALANCE_LIMIT or abs(held) >= BALANCE_LIMIT or abs(available + held) >= BALANCE_LIMIT:
            raise BalanceLimitExceeded(operation.client, operation.tx)

    def _recorded(self, operation: ReferenceOperation, account: Account) -> RecordedOperation:
        recorded = account.history.get(operation.tx)
        if recorded is None:
            raise UnknownReferencedTransaction(operation.client, operation.tx)
        return recorded

    def _process_dispute(self, operation: ReferenceOperation, account: Account) -> None:
        recorded = self._recorded(operation, account)
        if recorded.disputed:
            raise TransactionAlreadyDisputed(operation.client, operation.tx)

        available = account.available - recorded.amount
        held = account.held + recorded.amount
        self._check_limit(operation, available, held)

        recorded.disputed = True
        account.available = available
        account.held = held

        logger.debug(
            "Dispute opened",
            client=account.client,
            tx=operation.tx,
            amount=str(recorded.amount),
            held=str(account.held),
        )

    def _process_resolve(self, operation: ReferenceOperation, account: Account) -> None:
        recorded = self._recorded(operation, account)
        if not recorded.disputed:
            raise TransactionNotDisputed(operation.client, operation.tx)

        available = account.available + recorded.amount
        held = account.held - recorded.amount
        self._check_limit(operation, available, held)

        recorded.disputed = False
        account.available = available
        account.held = held

        logger.debug(
            "Dispute resolved",
            client=account.client,
            tx=operation.tx,
            amount=str(recorded.amount),
            held=str(account.held),
        )

    def _process_chargeback(self, operation: ReferenceOperation, account: Account) -> None:
        recorded = self._recorded(operation, account)
        if not recorded.disputed:
            raise TransactionNotDisputed(operation.client, operation.tx)

        recorded.disputed = False
        account.held -= recorded.amount
        account.locked = True

        logger.info(
            "Chargeback processed, account locked",
            client=account.client,
            tx=operation.tx,
            amount=str(recorded.amount),
        )


class LedgerService:
    def __init__(self, account_repo: AccountRepository, interpreter: Optional[OperationInterpreter] = None):
        self.account_repo = account_repo
        self.interpreter = interpreter or OperationInterpreter()

    def apply(self, operation: Operation) -> Account:
        """Apply an operation to its target account, creating the account on first reference.

        An account created here stays registered even when the operation is
        rejected.
        """
        account = self.account_repo.get_or_create(operation.client)

        try:
            self.interpreter.execute(operation, account)
        except OperationError as e:
            logger.warning(
                "Operation rejected",
                type=operation.type,
                client=operation.client,
                tx=operation.tx,
                error_code=e.error_code,
                reason=e.message,
            )
            raise

        return account

    def replay(self, operations: Iterable[Operation]) -> ReplaySummary:
        """Apply operations in order, continuing past business rule rejections.

        Errors raised by the iterable itself (for instance a malformed input
        row) are not caught and end the replay.
        """
        summary = ReplaySummary()

        for operation in operations:
            try:
                self.apply(operation)
            except OperationError as e:
                summary.rejected += 1
                summary.rejections[e.error_code] = summary.rejections.get(e.error_code, 0) + 1
            else:
                summary.applied += 1

        logger.info(
            "Replay completed",
            applied=summary.applied,
            rejected=summary.rejected,
            accounts=self.account_repo.get_accounts_count(),
        )

        return summary

    def snapshot(self, sort_by_client: bool = False) -> List[AccountSnapshot]:
        return self.account_repo.snapshot(sort_by_client=sort_by_client)


# Factory function for dependency injection
def get_ledger_service(account_repo: AccountRepository) -> LedgerService:
    return LedgerService(account_repo)
