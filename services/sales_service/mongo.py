# ./services/sales_service/mongo.py
"""MongoDB persistence for vehicle sales.

One document per sale, keyed by the sale id (``_id``). ``paymentCode`` has a
unique index: payment-provider callbacks look sales up by it, and a duplicate
code is rejected by the store instead of silently shadowing another sale.
"""
import os
import logging
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient, errors

from shared.errors import ConflictError, UnavailableError
from services.sales_service.domain import VehicleSale

logger = logging.getLogger(__name__)

MONGO_URI = os.getenv("MONGO_URI", "mongodb://mongo:27017")
MONGO_DB = os.getenv("MONGO_DB", "sales_db")
MONGO_COLLECTION = os.getenv("MONGO_COLLECTION", "vehicle_sales")
MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))

_collection = None


def ensure_indexes(collection):
    collection.create_index([("paymentCode", ASCENDING)], unique=True)
    collection.create_index([("createdAt", DESCENDING)])


def get_collection():
    """Connect to MongoDB once and return the sales collection."""
    global _collection
    if _collection is None:
        logger.info(f"Connecting to MongoDB database {MONGO_DB}")
        client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=MONGO_TIMEOUT_MS)
        _collection = client[MONGO_DB][MONGO_COLLECTION]
        ensure_indexes(_collection)
    return _collection


def ping(collection) -> bool:
    try:
        collection.database.command("ping")
        return True
    except errors.PyMongoError as e:
        logger.error(f"MongoDB connection error: {e}")
        return False


class SaleRepository:
    def __init__(self, collection):
        self.collection = collection

    def insert(self, sale: VehicleSale) -> VehicleSale:
        try:
            self.collection.insert_one(sale.to_document())
        except errors.DuplicateKeyError:
            raise ConflictError(f"Payment code {sale.payment_code} already exists")
        except errors.PyMongoError as e:
            logger.error(f"Insert failed for sale {sale.id}: {e}")
            raise UnavailableError("Sales database unavailable", str(e))
        logger.info(f"Sale {sale.id} stored with payment code {sale.payment_code}.")
        return sale

    def update(self, sale: VehicleSale):
        try:
            self.collection.update_one(
                {"_id": sale.id},
                {"$set": {"paymentStatus": sale.payment_status.value, "updatedAt": sale.updated_at}}
            )
        except errors.PyMongoError as e:
            logger.error(f"Update failed for sale {sale.id}: {e}")
            raise UnavailableError("Sales database unavailable", str(e))

    def _find_one(self, query: dict) -> Optional[VehicleSale]:
        try:
            document = self.collection.find_one(query)
        except errors.PyMongoError as e:
            raise UnavailableError("Sales database unavailable", str(e))
        return VehicleSale.from_document(document) if document else None

    def find_by_id(self, sale_id: str) -> Optional[VehicleSale]:
        return self._find_one({"_id": sale_id})

    def find_by_payment_code(self, payment_code: str) -> Optional[VehicleSale]:
        return self._find_one({"paymentCode": payment_code})

    def list_all(self) -> List[VehicleSale]:
        """Return all sales, newest first."""
        try:
            documents = list(self.collection.find().sort("createdAt", DESCENDING))
        except errors.PyMongoError as e:
            raise UnavailableError("Sales database unavailable", str(e))
        return [VehicleSale.from_document(d) for d in documents]
