"""Reference token ledger and the per-holder view the escrow uses."""

from x402_escrow.ledger.account import LedgerAccount
from x402_escrow.ledger.token import TokenLedger

__all__ = ["LedgerAccount", "TokenLedger"]
