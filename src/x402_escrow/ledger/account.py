"""A TokenLedger seen from one holder: the Ledger the escrow consumes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from x402_escrow.encoding import require_address

if TYPE_CHECKING:
    from x402_escrow.domain.models import Authorization
    from x402_escrow.ledger.token import TokenLedger


class LedgerAccount:
    """Binds ``token`` to ``holder`` so every movement is made as that holder.

    Signed pulls go through receive-with-authorization, which requires the
    holder to be the payee named in the signed message.
    """

    def __init__(self, token: TokenLedger, holder: str) -> None:
        self.token = token
        self.holder = require_address(holder, "holder")

    @property
    def balance(self) -> int:
        return self.token.balance_of(self.holder)

    def push_transfer(self, to: str, amount: int) -> None:
        self.token.transfer(self.holder, to, amount)

    def pull_with_allowance(self, owner: str, to: str, amount: int) -> None:
        self.token.transfer_from(self.holder, owner, to, amount)

    def pull_with_authorization(self, authorization: Authorization, signature: bytes) -> None:
        self.token.receive_with_authorization(self.holder, authorization, signature)
