from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from models import Account, AccountSnapshot


class AccountRepository(ABC):
    @abstractmethod
    def get(self, client: int) -> Optional[Account]:
        """Get an account. Returns None if the account doesn't exist."""
        pass

    @abstractmethod
    def get_or_create(self, client: int) -> Account:
        """Get an account, registering a zeroed one on first reference."""
        pass

    @abstractmethod
    def all_accounts(self) -> List[Account]:
        """Get every registered account in registration order."""
        pass

    @abstractmethod
    def get_accounts_count(self) -> int:
        """Get total number of accounts."""
        pass

    def snapshot(self, sort_by_client: bool = False) -> List[AccountSnapshot]:
        """Read-only view of every account with its derived total."""
        accounts = self.all_accounts()
        if sort_by_client:
            accounts = sorted(accounts, key=lambda account: account.client)
        return [AccountSnapshot.from_account(account) for account in accounts]


class InMemoryAccountRepository(AccountRepository):
    def __init__(self):
        self.accounts: Dict[int, Account] = {}

    def get(self, client: int) -> Optional[Account]:
        return self.accounts.get(client)

    def get_or_create(self, client: int) -> Account:
        account = self.accounts.get(client)
        if account is None:
            account = Account(client=client)
            self.accounts[client] = account
        return account

    def all_accounts(self) -> List[Account]:
        return list(self.accounts.values())

    def get_accounts_count(self) -> int:
        return len(self.accounts)


# Singleton instance backing the HTTP API
_account_repo = InMemoryAccountRepository()


def get_account_repository() -> AccountRepository:
    return _account_repo


def reset_repositories():
    """Reset all repositories to initial state (for testing only)."""
    global _account_repo
    _account_repo = InMemoryAccountRepository()
