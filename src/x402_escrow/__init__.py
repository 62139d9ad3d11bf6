"""x402 payment escrow: task payments held between deposit and release or refund."""

__version__ = "0.1.0"
