from enum import IntEnum

from solders.pubkey import Pubkey

from .errors import InputError

SYS_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")


class MarketStatus(IntEnum):
    ACTIVE = 0
    CLOSED = 1
    RESOLVED = 2
    CANCELLED = 3
    PAUSED = 4
    RESOLVED_PENDING = 5
    DISPUTED = 6


class MarketOutcome(IntEnum):
    UNDECIDED = 0
    INVALID = 1
    YES = 2
    NO = 3


class Layer(IntEnum):
    OFFICIAL = 0
    LAB = 1
    PRIVATE = 2


class AccessGate(IntEnum):
    PUBLIC = 0
    WHITELIST = 1
    INVITE_HASH = 2


class CurrencyType(IntEnum):
    SOL = 0
    USDC = 1


class ResolutionMode(IntEnum):
    HOST = 0
    COUNCIL = 1


STATUS_NAMES = {
    MarketStatus.ACTIVE: "Active",
    MarketStatus.CLOSED: "Closed",
    MarketStatus.RESOLVED: "Resolved",
    MarketStatus.CANCELLED: "Cancelled",
    MarketStatus.PAUSED: "Paused",
    MarketStatus.RESOLVED_PENDING: "Pending Resolution",
    MarketStatus.DISPUTED: "Disputed",
}

LAYER_NAMES = {
    Layer.OFFICIAL: "Official",
    Layer.LAB: "Lab",
    Layer.PRIVATE: "Private",
}


def status_name(code: int) -> str:
    try:
        return STATUS_NAMES[MarketStatus(code)]
    except ValueError:
        return "Unknown"


def layer_name(code: int) -> str:
    try:
        return LAYER_NAMES[Layer(code)]
    except ValueError:
        return "Unknown"


def parse_layer(value) -> Layer:
    if isinstance(value, Layer):
        return value
    if isinstance(value, int):
        if value not in Layer._value2member_map_:
            raise InputError(f"Unsupported layer {value}")
        return Layer(value)
    norm = str(value).strip().upper()
    if norm not in Layer.__members__:
        raise InputError(f"Unsupported layer {value}")
    return Layer[norm]


# Account discriminators (first 8 bytes of every program-owned account)
MARKET_DISCRIMINATOR = bytes([219, 190, 213, 55, 0, 227, 198, 154])
USER_POSITION_DISCRIMINATOR = bytes([251, 248, 209, 245, 83, 234, 17, 27])
RACE_MARKET_DISCRIMINATOR = bytes([149, 8, 156, 202, 160, 252, 176, 217])
AFFILIATE_DISCRIMINATOR = bytes([24, 240, 16, 245, 33, 46, 77, 168])
REFERRED_USER_DISCRIMINATOR = bytes([188, 210, 247, 185, 105, 204, 220, 46])
DISPUTE_META_DISCRIMINATOR = bytes([62, 14, 221, 64, 175, 241, 48, 165])
