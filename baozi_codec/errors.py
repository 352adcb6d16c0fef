from typing import Dict, Optional


class CodecError(Exception):
    """Base class for everything raised by the codec layer."""


class InputError(CodecError, ValueError):
    """Malformed key, seed or out-of-bounds value. Raised before anything is built."""


class LayoutDecodeError(CodecError):
    def __init__(self, message: str, expected: Optional[bytes] = None, actual: Optional[bytes] = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


# Custom error codes returned by the program during simulation/execution
PROGRAM_ERRORS: Dict[int, str] = {
    6000: "NotExpectedAdmin",
    6001: "NotAdmin",
    6002: "NotAdminOrGuardian",
    6003: "InvalidUsdcMint",
    6004: "InvalidTreasury",
    6005: "InvalidVault",
    6006: "ProtocolPaused",
    6007: "MarketPaused",
    6008: "QuestionTooLong",
    6009: "ClosingTimeInPast",
    6010: "ClosingTimeTooFar",
    6011: "EventStartTimeInPast",
    6012: "EventStartTimeTooFar",
    6013: "InvalidAutoStopBuffer",
    6014: "InvalidResolutionBuffer",
    6015: "MarketNotOpen",
    6016: "MarketNotClosed",
    6017: "MarketNotResolved",
    6018: "BettingClosed",
    6019: "EventStarted",
    6020: "BetTooSmall",
    6021: "SlippageExceeded",
    6022: "FeeOnTransferNotSupported",
    6023: "SnapshotTooEarly",
    6024: "SnapshotAlreadyTaken",
    6025: "SnapshotNotTaken",
    6026: "CloseTooEarly",
    6027: "ResolutionDeadlinePassed",
    6028: "InvalidOutcome",
    6029: "AlreadyResolved",
    6030: "EmergencyResolveTooEarly",
    6031: "WrongCurrency",
    6032: "AlreadyClaimed",
    6033: "NothingToClaim",
    6034: "MathOverflow",
    6035: "TooEarlyToResolve",
    6036: "FeeTooHigh",
    6037: "InsufficientVaultBalance",
    6038: "InvalidPosition",
    6039: "InvalidTokenAccount",
    6040: "BettingFrozen",
    6041: "BetTooLarge",
    6042: "InsufficientMarketBalance",
}


def explain_program_error(code: int) -> str:
    return PROGRAM_ERRORS.get(code, "Unknown")
