"""
Sales synchronization and repricing of one funding product.
"""

from typing import Optional

from funding_pricer.auth.token_manager import TokenLifecycleManager
from funding_pricer.database.models import FundingProduct
from funding_pricer.database.operations import FundingProductRepository
from funding_pricer.marketplaces.factory import CatalogClientFactory, create_catalog_client
from funding_pricer.monitoring.prometheus_metrics import PrometheusMetrics, get_metrics
from funding_pricer.services.pricing_engine import PricingEngine, PricingResult
from funding_pricer.services.sales_aggregator import SalesAggregator
from funding_pricer.services.shop_directory import ShopDirectory
from funding_pricer.utils.exceptions import ReauthorizationRequiredError
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)


class FundingSyncService:
    """
    Token → sales count → pricing for a funding configuration.

    Runs synchronously; callers (the sync endpoint, or a scheduler outside
    this package) decide when to run it.
    """

    def __init__(
        self,
        token_manager: TokenLifecycleManager,
        repository: FundingProductRepository,
        directory: Optional[ShopDirectory] = None,
        client_factory: CatalogClientFactory = create_catalog_client,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.token_manager = token_manager
        self.repository = repository
        self.directory = directory
        self.client_factory = client_factory
        self.metrics = metrics or get_metrics()

    def sync_and_price(self, config: FundingProduct) -> PricingResult:
        """
        Refresh the sales count of ``config`` and apply its tier price.

        Returns:
            PricingResult (``disabled`` set when the configuration is off)

        Raises:
            ReauthorizationRequiredError: No valid access token could be
                obtained; the tenant must authorize the app again
            DatabaseError: The sales count could not be stored
        """
        if not config.enabled:
            logger.info(f"Funding product {config.id} is disabled, skipping sync")
            self.metrics.track_sync("disabled")
            return PricingResult.for_disabled(config)

        access_token = self.token_manager.get_valid_access_token(config.mall_id)
        if access_token is None:
            self.metrics.track_sync("reauthorization_required")
            raise ReauthorizationRequiredError(
                "No valid access token, the app must be authorized again",
                mall_id=config.mall_id,
            )

        catalog = self.client_factory(config.mall_id, access_token, self._shop_no(config.mall_id))

        raw_sales = SalesAggregator(catalog).get_product_sales_count(
            config.product_no,
            include_cancellations=config.include_cancellations,
        )

        result = PricingEngine(catalog, self.repository, self.metrics).apply(config, raw_sales)
        self.metrics.track_sync(self._outcome(result, config))
        return result

    def _shop_no(self, mall_id: str) -> str:
        if self.directory is None:
            return "1"
        summary = self.directory.get_summary(mall_id) or {}
        return summary.get("shop_no") or "1"

    @staticmethod
    def _outcome(result: PricingResult, config: FundingProduct) -> str:
        if result.price_updated:
            return "updated"
        if result.applied_step is not None and result.price != config.initial_price:
            return "update_failed"
        return "unchanged"
