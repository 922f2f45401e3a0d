import logging

from qdrant_client import QdrantClient
from qdrant_client.http.models import (
    Distance,
    VectorParams,
    PayloadSchemaType,
)

from docchat.config import (
    QDRANT_URL,
    QDRANT_API_KEY,
    QDRANT_COLLECTION,
    QDRANT_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

# Payload fields used by retrieval filters and delete-by-filter
INDEXED_PAYLOAD_FIELDS = ("document_id", "source_type", "user_id")


class QdrantVectorDB:
    """
    Thin Qdrant connection wrapper.

    Owns the client and makes sure the collection and its payload
    indexes exist. Query logic lives in QdrantVectorStore.
    """

    def __init__(
        self,
        dim: int,
        url: str = QDRANT_URL,
        api_key: str = QDRANT_API_KEY,
        collection: str = QDRANT_COLLECTION,
        client: QdrantClient = None,
    ):

        self._dim = dim

        self.client = client or QdrantClient(
            url=url,
            api_key=api_key,
            timeout=QDRANT_TIMEOUT_SECONDS,
        )

        self.collection = collection

        self._ensure_collection()

        logger.info(
            "Qdrant client initialized",
            extra={"collection": self.collection, "dimension": dim},
        )

    def _ensure_collection(self):

        if not self.client.collection_exists(self.collection):

            self.client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(
                    size=self._dim,
                    distance=Distance.COSINE,
                ),
            )

            logger.info(
                "Qdrant collection created",
                extra={"collection": self.collection},
            )

        for field_name in INDEXED_PAYLOAD_FIELDS:

            try:

                self.client.create_payload_index(
                    collection_name=self.collection,
                    field_name=field_name,
                    field_schema=PayloadSchemaType.KEYWORD,
                )

            except Exception as e:
                # Qdrant rejects re-creating an existing index
                logger.debug(
                    "Payload index already exists or skipped",
                    extra={"field": field_name, "error": str(e)},
                )
