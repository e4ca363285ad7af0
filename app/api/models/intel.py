# app/api/models/intel.py
from pydantic import BaseModel, Field
from typing import Optional, Literal


class SimulateRequest(BaseModel):
    """Request model for previewing an sBTC position before execution."""
    action: Literal["deposit", "borrow", "loop", "unwind"] = Field(
        ..., description="Position action to simulate.", examples=["deposit"]
    )
    protocol: str = Field(
        ...,
        min_length=1,
        description="Protocol name or a case-insensitive fragment of it (e.g. 'zest').",
        examples=["zest"],
    )
    amountBtc: float = Field(..., gt=0, description="Position size in BTC.", examples=[0.5])
    leverage: Optional[float] = Field(
        None,
        ge=0,
        description="Number of borrow/re-deposit loops for 'loop'. Defaults to 1.",
        examples=[3],
    )


class AgentIntelRequest(BaseModel):
    """Request model for an agent-executable allocation strategy."""
    wallet: Optional[str] = Field(None, description="Agent wallet address (informational).")
    riskTolerance: Literal["conservative", "moderate", "aggressive"] = Field(
        ..., description="Which risk tiers the allocation may use.", examples=["moderate"]
    )
    capitalBtc: float = Field(..., gt=0, description="Capital to allocate, in BTC.", examples=[1.0])
