"""Off-chain codec and rule checks for the Baozi parimutuel market program."""

__version__ = "0.1.0"
