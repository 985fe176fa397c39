"""
Keyed CRUD operations over the three persisted collections.

Each repository wraps a SQLAlchemy session. Writes commit immediately; any
SQLAlchemy failure is rolled back and re-raised as DatabaseError so that an
unpersisted token, state or sales count is never mistaken for success.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from funding_pricer.database.models import FundingProduct, OAuthState, Shop
from funding_pricer.utils.exceptions import DatabaseError
from funding_pricer.utils.logger import get_logger
from funding_pricer.utils.timeutils import utcnow

logger = get_logger(__name__)


class _Repository:
    """Shared session handling."""

    table: str = ""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _write(self, operation: str) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database {operation} on {self.table} failed: {e}")
            raise DatabaseError(
                f"Failed to {operation} {self.table}",
                operation=operation,
                table=self.table,
            ) from e

    def _read(self, statement, operation: str = "read"):
        try:
            return self.db.execute(statement)
        except SQLAlchemyError as e:
            logger.error(f"Database {operation} on {self.table} failed: {e}")
            raise DatabaseError(
                f"Failed to {operation} {self.table}",
                operation=operation,
                table=self.table,
            ) from e


class ShopRepository(_Repository):
    """Integration records keyed by mall_id."""

    table = "shops"

    def get(self, mall_id: str) -> Optional[Shop]:
        # populate_existing: always see the latest persisted tokens, not the identity map
        result = self._read(
            select(Shop)
            .where(Shop.mall_id == mall_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def upsert(self, mall_id: str, values: Dict[str, Any]) -> Shop:
        """Insert or fully update the record for ``mall_id``."""
        with self._write("upsert"):
            shop = self.db.get(Shop, mall_id)
            if shop is None:
                shop = Shop(mall_id=mall_id)
                self.db.add(shop)
            for key, value in values.items():
                setattr(shop, key, value)
            shop.updated_at = utcnow()
        return shop

    def update_tokens(
        self,
        mall_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        refresh_expires_at: Optional[datetime] = None,
    ) -> Shop:
        """Rotate both tokens and the expiry in a single commit."""
        with self._write("update"):
            shop = self.db.get(Shop, mall_id)
            if shop is None:
                raise DatabaseError(
                    f"Shop {mall_id} disappeared during token refresh",
                    operation="update",
                    table=self.table,
                )
            shop.access_token = access_token
            shop.refresh_token = refresh_token
            shop.expires_at = expires_at
            if refresh_expires_at is not None:
                shop.refresh_expires_at = refresh_expires_at
            shop.updated_at = utcnow()
        return shop

    def update_store_info(self, mall_id: str, store: Dict[str, Any]) -> Optional[Shop]:
        fields = ("shop_name", "primary_domain", "base_domain", "country", "country_code")
        with self._write("update"):
            shop = self.db.get(Shop, mall_id)
            if shop is None:
                return None
            for field in fields:
                if store.get(field) is not None:
                    setattr(shop, field, store[field])
            shop.updated_at = utcnow()
        return shop


class OAuthStateRepository(_Repository):
    """CSRF states keyed by the state value."""

    table = "oauth_states"

    def insert(self, state: str, mall_id: str, expires_at: datetime) -> OAuthState:
        with self._write("insert"):
            row = OAuthState(
                state=state,
                mall_id=mall_id,
                expires_at=expires_at,
                created_at=utcnow(),
            )
            self.db.add(row)
        return row

    def get_unexpired(self, state: str, now: datetime) -> Optional[OAuthState]:
        result = self._read(
            select(OAuthState).where(
                and_(OAuthState.state == state, OAuthState.expires_at > now)
            )
        )
        return result.scalar_one_or_none()

    def delete(self, state: str) -> bool:
        with self._write("delete"):
            result = self.db.execute(delete(OAuthState).where(OAuthState.state == state))
        return result.rowcount > 0

    def purge_expired(self, now: datetime) -> int:
        with self._write("delete"):
            result = self.db.execute(delete(OAuthState).where(OAuthState.expires_at <= now))
        return result.rowcount


class FundingProductRepository(_Repository):
    """Funding configurations keyed by id, with a (mall_id, product_no) lookup."""

    table = "funding_products"

    def get(self, product_id: str) -> Optional[FundingProduct]:
        result = self._read(select(FundingProduct).where(FundingProduct.id == product_id))
        return result.scalar_one_or_none()

    def get_by_product(self, mall_id: str, product_no: str) -> Optional[FundingProduct]:
        result = self._read(
            select(FundingProduct).where(
                and_(
                    FundingProduct.mall_id == mall_id,
                    FundingProduct.product_no == product_no,
                )
            )
        )
        return result.scalar_one_or_none()

    def list_for_mall(self, mall_id: str) -> List[FundingProduct]:
        result = self._read(
            select(FundingProduct)
            .where(FundingProduct.mall_id == mall_id)
            .order_by(FundingProduct.created_at.desc())
        )
        return list(result.scalars().all())

    def insert(self, values: Dict[str, Any]) -> FundingProduct:
        with self._write("insert"):
            product = FundingProduct(**values)
            self.db.add(product)
        return product

    def update(self, product: FundingProduct, values: Dict[str, Any]) -> FundingProduct:
        with self._write("update"):
            for key, value in values.items():
                setattr(product, key, value)
            product.updated_at = utcnow()
        return product

    def update_sales(self, product: FundingProduct, current_sales: int) -> FundingProduct:
        return self.update(product, {"current_sales": current_sales})

    def delete(self, product: FundingProduct) -> None:
        with self._write("delete"):
            self.db.delete(product)
