from amm_connector.abis.uniswap_v2 import UNISWAP_V2_PAIR_ABI, UNISWAP_V2_ROUTER_ABI

__all__ = ["UNISWAP_V2_PAIR_ABI", "UNISWAP_V2_ROUTER_ABI"]
