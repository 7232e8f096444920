from enum import Enum

class TradeType(str, Enum):
    INTRADAY = "INTRADAY"
    POSITIONAL = "POSITIONAL"

class InstrumentType(str, Enum):
    EQUITY = "EQUITY"
    FUTURES = "FUTURES"
    OPTIONS = "OPTIONS"

class PositionType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

class OptionType(str, Enum):
    CALL = "CALL"
    PUT = "PUT"

class ChargeType(str, Enum):
    BROKERAGE = "BROKERAGE"
    STT = "STT"
    EXCHANGE = "EXCHANGE"
    SEBI = "SEBI"
    STAMP_DUTY = "STAMP_DUTY"
    GST = "GST"

class PoolType(str, Enum):
    TOTAL = "TOTAL"
    EQUITY = "EQUITY"
    FNO = "FNO"

class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    PROFIT = "PROFIT"
    LOSS = "LOSS"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"

class TagKind(str, Enum):
    STRATEGY = "strategy"
    EMOTIONAL = "emotional"
    MARKET = "market"

# Calculators also accept the LONG/SHORT spelling
POSITION_ALIASES = {
    "BUY": PositionType.BUY,
    "LONG": PositionType.BUY,
    "SELL": PositionType.SELL,
    "SHORT": PositionType.SELL,
}

REFERENCE_TYPE_TRADE = "TRADE"
