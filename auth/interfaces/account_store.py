"""Account store interface."""

from __future__ import annotations

from typing import Protocol

from auth.models import Account, LoginHistoryEntry


class AccountStore(Protocol):
    async def get_by_email(self, email: str) -> Account | None:
        ...

    async def get_by_id(self, account_id: int) -> Account | None:
        ...

    async def get_by_reset_token_hash(self, token_hash: str) -> Account | None:
        ...

    async def create_account(self, account: Account) -> Account:
        ...

    async def update_account(self, account_id: int, updates: dict) -> Account:
        ...

    async def append_login_history(self, account_id: int, entry: LoginHistoryEntry, limit: int) -> None:
        ...

    async def increment_token_version(self, account_id: int) -> int:
        ...

    async def increment_failed_attempts(self, account_id: int) -> int:
        ...
