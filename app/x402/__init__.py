"""
x402 Payment Protocol Integration Module.

This module implements the x402 payment protocol over Stacks for the sBTC
intelligence API, enabling pay-per-request access to the priced endpoints
with STX or sBTC.

Key components:
- gate: token selection, 402 challenges and on-chain payment verification
- middleware: FastAPI middleware that applies the gate to priced routes
- pricing: price tiers of the priced endpoints
- audit: JSON-line audit events for every gate decision

Configuration is loaded from environment variables via app.core.config.
"""
