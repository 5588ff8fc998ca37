# /amm_connector/connectors/defikingdoms.py
from amm_connector.connectors.spenders import SpenderDirectory, spenders
from amm_connector.connectors.uniswapish import UniswapishConnector


class DfkCrystalvale(UniswapishConnector):
    """DeFi Kingdoms Crystalvale exchange on DFK Chain."""
    NAME = "dfk_crystalvale"


class DfkSerendale(UniswapishConnector):
    """DeFi Kingdoms Serendale exchange on Klaytn."""
    NAME = "dfk_serendale"


def register_spenders(directory: SpenderDirectory = spenders):
    """Lets approvals name an exchange instead of its router address."""
    directory.register(DfkCrystalvale.NAME, lambda: DfkCrystalvale.get_instance("dfkchain", "mainnet").router)
    directory.register(DfkSerendale.NAME, lambda: DfkSerendale.get_instance("klaytn", "mainnet").router)


register_spenders()
