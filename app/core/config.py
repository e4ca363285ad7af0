# app/core/config.py
from pydantic_settings import BaseSettings
from pydantic import BaseModel, ConfigDict
from functools import lru_cache
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "sBTC DeFi Intelligence API"
    PROJECT_DESCRIPTION: str = "Real-time analytics for programmable Bitcoin on Stacks"
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # Upstream data sources
    HIRO_API_URL: str = "https://api.hiro.so"
    TENERO_API_URL: str = "https://api.tenero.io"
    COINGECKO_API_URL: str = "https://api.coingecko.com"
    UPSTREAM_TIMEOUT_SECONDS: float = 10.0
    BTC_PRICE_FALLBACK_USD: float = 97000.0

    # Payment contract (x402 over Stacks)
    STACKS_NETWORK: str = "mainnet"
    PAYMENT_CONTRACT_ADDRESS: str = "SPP5ZMH9NQDFD2K5CEQZ6P02AP8YPWMQ75TJW20M"
    PAYMENT_CONTRACT_NAME: str = "simple-oracle"
    PAYMENT_FUNCTION: str = "call-with-stx"
    PAYMENT_RECIPIENT: str = "SPKH9AWG0ENZ87J1X0PBD4HETP22G8W22AFNVF8K"

    # Prices: STX in micro-STX, sBTC in sats
    STANDARD_PRICE_STX: int = 2000
    PREMIUM_PRICE_STX: int = 5000
    STANDARD_PRICE_SBTC: int = 2
    PREMIUM_PRICE_SBTC: int = 5

    # sBTC contracts
    SBTC_TOKEN_CONTRACT: str = "SM3VDXK3WZZSA84XXFKAFAF15NNZX32CTSG82JFQ4.sbtc-token"
    SBTC_DEPOSIT_CONTRACT: str = "SM3KNVZS30WM7F89SXKVVFY4SN9RMPZZ9FX929N0V.sbtc-deposit"

    # Comma-separated list, "*" allows any origin
    CORS_ALLOW_ORIGINS: str = "*"

    AUDIT_LOG_ENABLED: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env


class PaymentContract(BaseModel):
    """Clarity contract that receives STX payments."""
    model_config = ConfigDict(frozen=True)

    address: str
    name: str
    function: str
    recipient: str

    @property
    def contract_id(self) -> str:
        return f"{self.address}.{self.name}"


class TierPrice(BaseModel):
    """Price of one pricing tier in both payment tokens."""
    model_config = ConfigDict(frozen=True)

    stx: int  # micro-STX
    sbtc: int  # sats


class PricingTable(BaseModel):
    model_config = ConfigDict(frozen=True)

    standard: TierPrice
    premium: TierPrice


class SbtcContracts(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    deposit: str


class GateConfig(BaseModel):
    """
    Immutable payment configuration injected into the x402 middleware and
    the resource handlers at startup.
    """
    model_config = ConfigDict(frozen=True)

    network: str
    contract: PaymentContract
    pricing: PricingTable
    sbtc: SbtcContracts


def build_gate_config(source: Settings) -> GateConfig:
    """Freeze the payment-related settings into a GateConfig."""
    return GateConfig(
        network=source.STACKS_NETWORK,
        contract=PaymentContract(
            address=source.PAYMENT_CONTRACT_ADDRESS,
            name=source.PAYMENT_CONTRACT_NAME,
            function=source.PAYMENT_FUNCTION,
            recipient=source.PAYMENT_RECIPIENT,
        ),
        pricing=PricingTable(
            standard=TierPrice(stx=source.STANDARD_PRICE_STX, sbtc=source.STANDARD_PRICE_SBTC),
            premium=TierPrice(stx=source.PREMIUM_PRICE_STX, sbtc=source.PREMIUM_PRICE_SBTC),
        ),
        sbtc=SbtcContracts(
            token=source.SBTC_TOKEN_CONTRACT,
            deposit=source.SBTC_DEPOSIT_CONTRACT,
        ),
    )


@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()


@lru_cache()
def get_gate_config() -> GateConfig:
    return build_gate_config(get_settings())

settings = get_settings()
