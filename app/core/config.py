from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List

class Settings(BaseSettings):
    # Database - defaults to SQLite if not provided
    database_url: str = "sqlite:///./trading_journal.db"

    # Database connection settings
    database_pool_size: int = 10
    database_max_overflow: int = 20
    database_pool_recycle: int = 3600
    database_connect_timeout: int = 10
    database_sslmode: str = "prefer"  # prefer, require, disable

    # App settings
    app_name: str = "Trading Journal"
    debug: bool = False
    cors_origins: List[str] = [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ]

    # Default charge rates (Indian markets). Fractions of value, except
    # brokerage_value which is rupees per side in flat mode and a percent
    # of turnover in percentage mode.
    brokerage_type: str = Field("flat", alias="BROKERAGE_TYPE")  # flat, percentage
    brokerage_value: float = Field(20.0, alias="BROKERAGE_VALUE")
    stt_equity_rate: float = 0.001  # 0.1% on sell value
    stt_futures_rate: float = 0.0001  # 0.01% on sell value
    stt_options_rate: float = 0.0005  # 0.05% on premium on sell
    exchange_rate: float = 0.0000173  # 0.00173% on turnover
    sebi_rate: float = 0.000001  # 0.0001% on turnover
    stamp_duty_rate: float = 0.00003  # 0.003% on turnover

    # Equity exits are booked with all-zero charges
    equity_charges_exempt: bool = True

    # Capital ledger listing
    transactions_page_limit: int = 50

    class Config:
        env_file = ".env"
        populate_by_name = True  # Allow both field name and alias to work
        case_sensitive = False  # Case-insensitive for environment variables

settings = Settings()
