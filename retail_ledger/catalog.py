"""
Instrument Catalog

Starter set of 50 NASDAQ listings loaded into an empty registry at startup.
"""

from typing import NamedTuple

from .instruments import InstrumentRegistry
from .logging_config import get_logger


logger = get_logger("retail_ledger.catalog")


class CatalogEntry(NamedTuple):
    symbol: str
    name: str
    price: str
    units: int
    sector: str
    description: str


DEFAULT_CATALOG = (
    # Technology
    CatalogEntry("AAPL", "Apple Inc.", "175.50", 10000, "Technology", "American multinational technology company"),
    CatalogEntry("MSFT", "Microsoft Corporation", "380.25", 10000, "Technology", "American multinational technology corporation"),
    CatalogEntry("GOOGL", "Alphabet Inc.", "142.50", 10000, "Technology", "American multinational technology conglomerate"),
    CatalogEntry("AMZN", "Amazon.com Inc.", "155.75", 10000, "Consumer Cyclical", "American multinational technology and e-commerce company"),
    CatalogEntry("META", "Meta Platforms Inc.", "485.20", 10000, "Technology", "American multinational technology company - Social Media"),
    CatalogEntry("NVDA", "NVIDIA Corporation", "495.00", 10000, "Technology", "American multinational technology company - GPUs"),
    CatalogEntry("TSLA", "Tesla Inc.", "245.00", 10000, "Consumer Cyclical", "American electric vehicle and clean energy company"),
    CatalogEntry("NFLX", "Netflix Inc.", "485.50", 10000, "Communication Services", "American subscription streaming service"),
    CatalogEntry("ADBE", "Adobe Inc.", "560.75", 10000, "Technology", "American multinational computer software company"),
    CatalogEntry("CRM", "Salesforce Inc.", "275.30", 10000, "Technology", "American cloud-based software company"),
    CatalogEntry("INTC", "Intel Corporation", "42.85", 15000, "Technology", "American multinational corporation and technology company"),
    CatalogEntry("AMD", "Advanced Micro Devices", "125.40", 12000, "Technology", "American multinational semiconductor company"),
    CatalogEntry("ORCL", "Oracle Corporation", "115.60", 12000, "Technology", "American multinational computer technology corporation"),
    CatalogEntry("CSCO", "Cisco Systems Inc.", "52.75", 15000, "Technology", "American multinational technology conglomerate"),
    CatalogEntry("AVGO", "Broadcom Inc.", "1350.00", 5000, "Technology", "American designer, developer and global supplier of semiconductors"),

    # Consumer and retail
    CatalogEntry("SBUX", "Starbucks Corporation", "98.75", 15000, "Consumer Cyclical", "American multinational chain of coffeehouses"),
    CatalogEntry("COST", "Costco Wholesale Corp", "720.50", 8000, "Consumer Defensive", "American multinational corporation - Retail"),
    CatalogEntry("BKNG", "Booking Holdings Inc.", "3650.00", 3000, "Consumer Cyclical", "American travel technology company"),
    CatalogEntry("ABNB", "Airbnb Inc.", "145.25", 12000, "Consumer Cyclical", "American vacation rental online marketplace company"),
    CatalogEntry("EBAY", "eBay Inc.", "48.90", 15000, "Consumer Cyclical", "American multinational e-commerce company"),

    # Healthcare
    CatalogEntry("AMGN", "Amgen Inc.", "285.40", 10000, "Healthcare", "American multinational biopharmaceutical company"),
    CatalogEntry("GILD", "Gilead Sciences Inc.", "78.25", 12000, "Healthcare", "American biopharmaceutical company"),
    CatalogEntry("VRTX", "Vertex Pharmaceuticals", "425.80", 8000, "Healthcare", "American biopharmaceutical company"),
    CatalogEntry("REGN", "Regeneron Pharmaceuticals", "895.50", 7000, "Healthcare", "American biotechnology company"),
    CatalogEntry("BIIB", "Biogen Inc.", "245.30", 10000, "Healthcare", "American multinational biotechnology company"),
    CatalogEntry("MRNA", "Moderna Inc.", "95.40", 12000, "Healthcare", "American pharmaceutical and biotechnology company"),
    CatalogEntry("ILMN", "Illumina Inc.", "142.75", 10000, "Healthcare", "American biotechnology company"),

    # Financial services
    CatalogEntry("PYPL", "PayPal Holdings Inc.", "62.85", 15000, "Financial Services", "American multinational financial technology company"),
    CatalogEntry("ADSK", "Autodesk Inc.", "255.40", 10000, "Technology", "American multinational software corporation"),

    # Communication and media
    CatalogEntry("CMCSA", "Comcast Corporation", "42.50", 15000, "Communication Services", "American telecommunications conglomerate"),
    CatalogEntry("ATVI", "Activision Blizzard", "95.25", 12000, "Communication Services", "American video game holding company"),
    CatalogEntry("EA", "Electronic Arts Inc.", "138.90", 10000, "Communication Services", "American video game company"),

    # Semiconductors and hardware
    CatalogEntry("QCOM", "Qualcomm Inc.", "165.75", 12000, "Technology", "American multinational semiconductor and telecommunications equipment company"),
    CatalogEntry("TXN", "Texas Instruments Inc.", "175.20", 10000, "Technology", "American technology company that designs and manufactures semiconductors"),
    CatalogEntry("AMAT", "Applied Materials Inc.", "185.50", 10000, "Technology", "American corporation that supplies equipment to semiconductor industry"),
    CatalogEntry("LRCX", "Lam Research Corp", "825.30", 7000, "Technology", "American supplier of wafer fabrication equipment"),
    CatalogEntry("KLAC", "KLA Corporation", "615.75", 8000, "Technology", "American capital equipment company"),
    CatalogEntry("MCHP", "Microchip Technology", "88.40", 12000, "Technology", "American manufacturer of microcontroller products"),

    # Software and cloud
    CatalogEntry("WDAY", "Workday Inc.", "245.60", 10000, "Technology", "American on-demand financial management and human capital management software"),
    CatalogEntry("PANW", "Palo Alto Networks", "315.25", 10000, "Technology", "American multinational cybersecurity company"),
    CatalogEntry("SNPS", "Synopsys Inc.", "545.80", 8000, "Technology", "American electronic design automation company"),
    CatalogEntry("CDNS", "Cadence Design Systems", "285.40", 10000, "Technology", "American computational software company"),
    CatalogEntry("ANSS", "ANSYS Inc.", "325.75", 10000, "Technology", "American company that develops and markets CAE/multiphysics engineering simulation software"),
    CatalogEntry("DDOG", "Datadog Inc.", "125.90", 12000, "Technology", "American monitoring and analytics platform for developers"),
    CatalogEntry("TEAM", "Atlassian Corporation", "215.40", 10000, "Technology", "Australian software company that develops products for software developers"),
    CatalogEntry("ZM", "Zoom Video Communications", "70.25", 15000, "Technology", "American communications technology company"),

    # Industrials
    CatalogEntry("PCAR", "PACCAR Inc.", "105.80", 12000, "Industrials", "American truck manufacturer"),

    # Food and beverage
    CatalogEntry("MDLZ", "Mondelez International", "72.50", 15000, "Consumer Defensive", "American multinational confectionery, food, and beverage conglomerate"),
    CatalogEntry("PEP", "PepsiCo Inc.", "175.30", 10000, "Consumer Defensive", "American multinational food and beverage corporation"),

    # Utilities
    CatalogEntry("XEL", "Xcel Energy Inc.", "62.40", 15000, "Utilities", "American utility company based in Minneapolis, Minnesota"),
)


def seed_catalog(registry: InstrumentRegistry, enabled: bool = True) -> int:
    """
    Load DEFAULT_CATALOG into an empty registry

    Returns:
        Number of instruments created (0 when disabled or already populated)
    """
    if not enabled:
        logger.info("Instrument catalog seeding is disabled")
        return 0

    if registry.count() > 0:
        logger.info("Instruments already exist, skipping catalog seeding")
        return 0

    logger.info(f"Seeding {len(DEFAULT_CATALOG)} instruments")
    with registry.storage.atomic():
        for entry in DEFAULT_CATALOG:
            registry.create_instrument(
                symbol=entry.symbol,
                name=entry.name,
                current_price=entry.price,
                total_units=entry.units,
                sector=entry.sector,
                description=entry.description
            )

    logger.info(f"Seeded {len(DEFAULT_CATALOG)} instruments")
    return len(DEFAULT_CATALOG)
