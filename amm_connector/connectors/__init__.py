from amm_connector.connectors.defikingdoms import DfkCrystalvale, DfkSerendale, register_spenders
from amm_connector.connectors.uniswapish import UniswapishConnector

__all__ = ["DfkCrystalvale", "DfkSerendale", "UniswapishConnector", "register_spenders"]
