"""Read-only client for the legacy MongoDB document store.

All queries are scoped to one tenant through the `_p_company` pointer
("Company$<objectId>"). The MongoClient is created and closed by the caller
(`connect_source` / `open_source_database`) and the database handle is
passed to `LegacySourceClient`.
"""

import re
from collections.abc import Callable, Iterator
from functools import wraps
from typing import Any, TypeVar

from pymongo import ASCENDING, MongoClient, ReadPreference
from pymongo.database import Database
from pymongo.errors import PyMongoError

from legacy_migration.client.exceptions import EtlErrorCode, EtlServiceError
from legacy_migration.client.records import (
    LegacyCategoryConfig,
    RawSourceItem,
    RawSourceOffice,
    RawSourcePriceGuideItem,
    create_pointer,
    parse_pointer,
)
from legacy_migration.config import SourceConfig
from legacy_migration.utils.logging import get_logger
from legacy_migration.utils.retry import retry_on_source_error

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

OFFICE_COLLECTION = "Office"
CONFIG_COLLECTION = "CustomConfig"
ITEM_COLLECTION = "SSMeasureSheetItem"
PRICE_GUIDE_ITEM_COLLECTION = "SSPriceGuideItem"
USER_COLLECTION = "_User"

VALID_CATEGORY_TYPES = ("default", "detail", "deep_drill_down")

ITEM_SORT = [("orderNumber_", ASCENDING), ("_created_at", ASCENDING)]
CREATED_SORT = [("_created_at", ASCENDING)]


def connect_source(config: SourceConfig) -> MongoClient:
    """Create a MongoClient for the legacy store and verify the server is reachable.

    Raises:
        EtlServiceError: SOURCE_CONNECTION_FAILED if the server cannot be reached
    """
    try:
        client: MongoClient = MongoClient(
            config.uri,
            serverSelectionTimeoutMS=config.server_selection_timeout_ms,
            socketTimeoutMS=config.socket_timeout_ms,
        )
        client.admin.command("ping")
    except PyMongoError as e:
        raise EtlServiceError(
            f"Failed to connect to legacy MongoDB: {e}", EtlErrorCode.SOURCE_CONNECTION_FAILED
        ) from e
    return client


def is_replica_set(client: MongoClient) -> bool:
    """Whether the client is connected to a replica set member."""
    try:
        return bool(client.admin.command("hello").get("setName"))
    except PyMongoError:
        return False


def open_source_database(client: MongoClient, name: str | None = None) -> Database:
    """Return the legacy database, reading from secondaries when a replica set allows it."""
    try:
        if is_replica_set(client):
            logger.info("source_connected", topology="replica_set", read_preference="secondary")
            return client.get_database(name, read_preference=ReadPreference.SECONDARY_PREFERRED)
        logger.info("source_connected", topology="standalone")
        return client.get_database(name)
    except PyMongoError as e:
        raise EtlServiceError(
            f"Failed to open legacy database: {e}", EtlErrorCode.SOURCE_CONNECTION_FAILED
        ) from e


def _source_query(description: str) -> Callable[[F], F]:
    """Retry transient failures, then report any remaining driver error as SOURCE_QUERY_FAILED."""

    def decorator(func: F) -> F:
        retrying = retry_on_source_error()(func)

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return retrying(*args, **kwargs)
            except PyMongoError as e:
                logger.error("source_query_failed", query=description, error=str(e))
                raise EtlServiceError(
                    f"Failed to {description}: {e}", EtlErrorCode.SOURCE_QUERY_FAILED
                ) from e

        return wrapper  # type: ignore

    return decorator


class LegacySourceClient:
    """Tenant-scoped queries against the legacy document store."""

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _company_filter(source_company_id: str, **extra: Any) -> dict[str, Any]:
        return {"_p_company": create_pointer("Company", source_company_id), **extra}

    # Offices

    @_source_query("count offices")
    def count_offices(self, source_company_id: str) -> int:
        return self.database[OFFICE_COLLECTION].count_documents(
            self._company_filter(source_company_id)
        )

    @_source_query("fetch offices")
    def query_offices(self, source_company_id: str, skip: int, limit: int) -> list[RawSourceOffice]:
        cursor = (
            self.database[OFFICE_COLLECTION]
            .find(self._company_filter(source_company_id))
            .sort(CREATED_SORT)
            .skip(skip)
            .limit(limit)
        )
        return [RawSourceOffice.from_document(doc) for doc in cursor]

    @_source_query("fetch offices by ids")
    def query_offices_by_ids(
        self, source_company_id: str, object_ids: list[str]
    ) -> list[RawSourceOffice]:
        if not object_ids:
            return []
        cursor = self.database[OFFICE_COLLECTION].find(
            self._company_filter(source_company_id, _id={"$in": object_ids})
        )
        return [RawSourceOffice.from_document(doc) for doc in cursor]

    # Categories

    @_source_query("fetch categories")
    def query_categories(self, source_company_id: str) -> list[LegacyCategoryConfig]:
        """Root categories declared in the CustomConfig documents of the tenant's offices.

        Categories are deduplicated by name (first wins) and sorted by `order`.
        """
        offices = self.database[OFFICE_COLLECTION].find(
            self._company_filter(source_company_id), {"_id": 1, "_p_config": 1}
        )
        config_ids = [
            config_id
            for config_id in (parse_pointer(office.get("_p_config")) for office in offices)
            if config_id is not None
        ]
        if not config_ids:
            return []

        categories: dict[str, LegacyCategoryConfig] = {}
        for config in self.database[CONFIG_COLLECTION].find({"_id": {"$in": config_ids}}):
            for raw in config.get("categories_") or []:
                name = raw.get("name")
                if not name or name in categories:
                    continue
                raw_type = raw.get("type")
                categories[name] = LegacyCategoryConfig(
                    name=name,
                    order=raw.get("order") or 0,
                    type=raw_type if raw_type in VALID_CATEGORY_TYPES else "default",
                    object_id=raw.get("objectId"),
                    is_locked=raw.get("isLocked"),
                )

        return sorted(categories.values(), key=lambda c: c.order)

    # Measure sheet items

    @_source_query("count items")
    def count_items(self, source_company_id: str) -> int:
        return self.database[ITEM_COLLECTION].count_documents(
            self._company_filter(source_company_id)
        )

    @_source_query("fetch items")
    def query_items(self, source_company_id: str, skip: int, limit: int) -> list[RawSourceItem]:
        cursor = (
            self.database[ITEM_COLLECTION]
            .find(self._company_filter(source_company_id))
            .sort(ITEM_SORT)
            .skip(skip)
            .limit(limit)
        )
        return [RawSourceItem.from_document(doc) for doc in cursor]

    @_source_query("fetch items by ids")
    def query_items_by_ids(
        self, source_company_id: str, object_ids: list[str]
    ) -> list[RawSourceItem]:
        if not object_ids:
            return []
        cursor = (
            self.database[ITEM_COLLECTION]
            .find(self._company_filter(source_company_id, _id={"$in": object_ids}))
            .sort(ITEM_SORT)
        )
        return [RawSourceItem.from_document(doc) for doc in cursor]

    def iter_all_items(self, source_company_id: str, page_size: int = 500) -> Iterator[RawSourceItem]:
        """Yield every item of the tenant, fetched page by page."""
        skip = 0
        while True:
            page = self.query_items(source_company_id, skip, page_size)
            yield from page
            if len(page) < page_size:
                return
            skip += page_size

    # Options and up-charges (both stored as SSPriceGuideItem)

    def _price_guide_filter(self, source_company_id: str, is_accessory: bool) -> dict[str, Any]:
        return self._company_filter(source_company_id, isAccessory=is_accessory)

    def _query_price_guide_items(
        self, source_company_id: str, is_accessory: bool, skip: int, limit: int
    ) -> list[RawSourcePriceGuideItem]:
        cursor = (
            self.database[PRICE_GUIDE_ITEM_COLLECTION]
            .find(self._price_guide_filter(source_company_id, is_accessory))
            .sort(CREATED_SORT)
            .skip(skip)
            .limit(limit)
        )
        return [RawSourcePriceGuideItem.from_document(doc) for doc in cursor]

    @_source_query("count options")
    def count_options(self, source_company_id: str) -> int:
        return self.database[PRICE_GUIDE_ITEM_COLLECTION].count_documents(
            self._price_guide_filter(source_company_id, False)
        )

    @_source_query("fetch options")
    def query_options(
        self, source_company_id: str, skip: int, limit: int
    ) -> list[RawSourcePriceGuideItem]:
        return self._query_price_guide_items(source_company_id, False, skip, limit)

    @_source_query("count up-charges")
    def count_upcharges(self, source_company_id: str) -> int:
        return self.database[PRICE_GUIDE_ITEM_COLLECTION].count_documents(
            self._price_guide_filter(source_company_id, True)
        )

    @_source_query("fetch up-charges")
    def query_upcharges(
        self, source_company_id: str, skip: int, limit: int
    ) -> list[RawSourcePriceGuideItem]:
        return self._query_price_guide_items(source_company_id, True, skip, limit)

    # Users

    @_source_query("look up user")
    def lookup_company_id_by_email(self, email: str) -> str | None:
        """Return the legacy company id of the user with this email (case-insensitive).

        Older accounts store the email in `username`, so both fields are matched.
        """
        pattern = {"$regex": f"^{re.escape(email.strip())}$", "$options": "i"}
        user = self.database[USER_COLLECTION].find_one(
            {"$or": [{"email": pattern}, {"username": pattern}]},
            {"_p_company": 1},
        )
        if user is None:
            return None
        return parse_pointer(user.get("_p_company"))
