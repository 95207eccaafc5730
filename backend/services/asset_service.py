"""Service for managing Asset records."""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Asset

logger = logging.getLogger(__name__)


class AssetService:
    """Centralized operations on the Asset master list."""

    @staticmethod
    def ensure_exists(
        db: Session,
        asset_id: str,
        symbol: Optional[str] = None,
    ) -> Asset:
        """Ensure an Asset record exists for the given identifier.

        Creates the record if it doesn't exist. An existing record only gets
        its symbol filled in when it has none yet; feed symbols never
        overwrite one already stored.

        Returns:
            The Asset record (flushed but not committed)
        """
        asset = db.get(Asset, asset_id)

        if asset is None:
            try:
                with db.begin_nested():
                    asset = Asset(id=asset_id, symbol=symbol, name=symbol)
                    db.add(asset)
                logger.info("Created asset: %s", asset_id)
            except IntegrityError:
                # Created concurrently by another session
                asset = db.get(Asset, asset_id)
        elif symbol and not asset.symbol:
            asset.symbol = symbol
            if not asset.name:
                asset.name = symbol
            db.flush()
            logger.info("Filled missing asset symbol: %s -> %s", asset_id, symbol)

        return asset
