"""Uniswap-V2-style AMM connectors for EVM chains."""
