# app/api/models/payment.py
from pydantic import BaseModel, Field
from typing import Optional, List, Literal


class SbtcTokenContract(BaseModel):
    token: str = Field(..., description="sBTC SIP-010 token contract id.")
    deposit: str = Field(..., description="sBTC deposit contract id.")


class WhyStacks(BaseModel):
    message: str = "This API runs on Stacks - the only Bitcoin L2 with smart contracts"
    benefits: List[str] = [
        "sBTC: Trustless 1:1 Bitcoin peg (not wrapped)",
        "Clarity: Decidable smart contracts with no runtime surprises",
        "Bitcoin finality: Transactions settle on Bitcoin",
        "x402: Native micropayments without credit cards or accounts",
    ]


class ContractPayment(BaseModel):
    """How to pay in STX: call the payment contract."""
    contract: str = Field(..., description="Fully qualified payment contract id (address.name).")
    function: str = Field(..., description="Public function to call with the STX payment.")
    price: int = Field(..., description="Price in micro-STX.")
    token: Literal["STX"] = "STX"
    recipient: str


class StxOption(BaseModel):
    price: int
    method: Literal["contract-call"] = "contract-call"


class SbtcOption(BaseModel):
    price: int
    method: Literal["direct-transfer"] = "direct-transfer"
    tokenContract: SbtcTokenContract


class PaymentOptions(BaseModel):
    stx: StxOption
    sbtc: SbtcOption


class PaymentChallenge(BaseModel):
    """
    Body of an HTTP 402 Payment Required response.

    Built fresh for every unpaid request to a priced resource and never
    stored. STX challenges carry `payment` and `paymentOptions`; sBTC
    challenges carry `tokenContract`.
    """
    error: str = "Payment Required"
    code: Literal["PAYMENT_REQUIRED"] = "PAYMENT_REQUIRED"
    resource: str = Field(..., description="Path of the priced resource.")
    nonce: str = Field(..., description="Random UUID identifying this challenge.")
    expiresAt: str = Field(..., description="Challenge expiry (ISO-8601 UTC), 10 minutes after creation.")
    network: str
    maxAmountRequired: str = Field(..., description="Amount in the token's smallest unit (micro-STX or sats).")
    payTo: str
    tokenType: Literal["STX", "sBTC"]
    why_stacks: WhyStacks = Field(default_factory=WhyStacks)

    # STX branch
    payment: Optional[ContractPayment] = None
    paymentOptions: Optional[PaymentOptions] = None

    # sBTC branch
    tokenContract: Optional[SbtcTokenContract] = None

    instructions: List[str]


class PaymentRejection(BaseModel):
    """Body of an HTTP 403 returned when a payment proof does not verify."""
    error: str = "Payment verification failed"
    details: str
