"""
Access Control Module

Operator-only checks for restricted ledger operations. The caller's account
is resolved by the host for every transaction; this module only decides
whether that account may run a restricted operation.
"""

from typing import Callable, Optional

from .exceptions import AccessDeniedError
from .logging_config import get_logger, log_action


IdentityProvider = Callable[[], str]


class AccessController:
    """Decides which accounts may run operator-only operations"""

    def __init__(self, operator_account: str):
        if not operator_account:
            raise ValueError("Operator account must be set")
        self.operator_account = operator_account
        self.logger = get_logger("savings_ledger.access")

    def is_operator(self, account: Optional[str]) -> bool:
        return account == self.operator_account

    def require_operator(self, account: Optional[str], action: str = "") -> None:
        """
        Ensure the caller is the designated operator

        Raises:
            AccessDeniedError: If the caller is any other account
        """
        if self.is_operator(account):
            return

        log_action(
            self.logger, "warning", f"Operator-only action refused: {action}",
            account=account, action=action
        )
        raise AccessDeniedError(
            "Only the operator account may perform this action",
            {"account": account, "action": action}
        )


class StaticIdentity:
    """Identity provider returning a settable account, for embedding and tests"""

    def __init__(self, account: str):
        self.account = account

    def __call__(self) -> str:
        return self.account

    def switch(self, account: str) -> None:
        self.account = account
