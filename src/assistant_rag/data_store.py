"""Data store module for chunks, embeddings and message feedback."""

from typing import List, Dict, Any, Optional
from supabase import Client

from .models import MessageFeedbackRecord, ProcessedChunk
from .config import logger, get_supabase_client

class DataStore:
    """Service for storing processed data in a database."""

    def __init__(self, client: Optional[Client] = None):
        """
        Initialize the data store.

        Args:
            client: The Supabase client to use. If None, creates a new client.
        """
        self.client = client or get_supabase_client()
        self.table_name = "document_chunks"
        self.feedback_table_name = "message_feedback"
        logger.info("Data store initialized")

    async def test_connection(self) -> bool:
        """
        Test the database connection.

        Returns:
            bool: True if the connection is successful, False otherwise
        """
        try:
            logger.info("Testing database connection...")

            test_result = self.client.table(self.table_name).select("*", count="exact").limit(0).execute()
            row_count = test_result.count if hasattr(test_result, 'count') else 0
            logger.info(f"Database connection test successful. Row count: {row_count}")
            return True

        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    def _chunk_row(self, chunk: ProcessedChunk) -> Dict[str, Any]:
        return {
            "url": chunk.url,
            "chunk_number": chunk.chunk_number,
            "title": chunk.title,
            "content": chunk.content,
            "content_hash": chunk.content_hash,
            "metadata": chunk.metadata,
            "embedding": chunk.embedding,
        }

    async def insert_chunk(self, chunk: ProcessedChunk) -> Dict[str, Any]:
        """
        Insert a processed chunk into the database.

        Args:
            chunk: The processed chunk to insert

        Returns:
            Dict[str, Any]: The inserted row, or an empty dict on failure
        """
        try:
            logger.debug(f"Inserting chunk {chunk.chunk_number} for {chunk.url}: "
                         f"content_length={len(chunk.content)}, embedding_length={len(chunk.embedding)}")

            result = self.client.table(self.table_name).insert(self._chunk_row(chunk)).execute()

            logger.info(f"Successfully inserted chunk {chunk.chunk_number} for {chunk.url}")
            return result.data[0] if result.data else {}

        except Exception as e:
            logger.error(f"Error inserting chunk {chunk.chunk_number} for {chunk.url}: {e}")
            return {}

    async def insert_chunks(self, chunks: List[ProcessedChunk]) -> List[Dict[str, Any]]:
        """
        Insert multiple chunks in a single request.

        Falls back to row-by-row inserts when the bulk insert fails, so one bad
        row does not lose the whole page.

        Args:
            chunks: The processed chunks to insert

        Returns:
            List[Dict[str, Any]]: The inserted rows (empty dicts for failures)
        """
        if not chunks:
            return []

        logger.info(f"Inserting {len(chunks)} chunks into database")

        try:
            result = self.client.table(self.table_name).insert([self._chunk_row(c) for c in chunks]).execute()
            rows = list(result.data or [])
        except Exception as e:
            logger.warning(f"Bulk insert failed ({e}), inserting chunks one by one")
            rows = [await self.insert_chunk(chunk) for chunk in chunks]

        successful = sum(1 for r in rows if r)
        logger.info(f"Database insertion complete: {successful}/{len(chunks)} chunks successfully inserted")
        return rows

    async def get_chunks_by_url(self, url: str) -> List[Dict[str, Any]]:
        """
        Get all chunks for a URL.

        Args:
            url: The URL to get chunks for

        Returns:
            List[Dict[str, Any]]: The chunks for the URL
        """
        try:
            logger.info(f"Getting chunks for URL {url}")

            result = self.client.table(self.table_name).select("*").eq("url", url).execute()

            chunks = result.data
            logger.info(f"Found {len(chunks)} chunks for URL {url}")

            return chunks

        except Exception as e:
            logger.error(f"Error getting chunks for URL {url}: {e}")
            return []

    async def delete_chunks_by_url(self, url: str) -> int:
        """
        Delete the stored chunks of a page before it is re-synced.

        Args:
            url: The page URL

        Returns:
            int: Number of deleted rows
        """
        try:
            result = self.client.table(self.table_name).delete().eq("url", url).execute()
            deleted = len(result.data or [])
            logger.info(f"Deleted {deleted} existing chunks for {url}")
            return deleted

        except Exception as e:
            logger.error(f"Error deleting chunks for URL {url}: {e}")
            return 0

    async def delete_chunks_by_ids(self, ids: List[Any]) -> int:
        """
        Delete chunks by primary key, e.g. the rows a re-sync replaced.

        Args:
            ids: Row ids to delete

        Returns:
            int: Number of deleted rows
        """
        if not ids:
            return 0

        try:
            result = self.client.table(self.table_name).delete().in_("id", list(ids)).execute()
            deleted = len(result.data or [])
            logger.info(f"Deleted {deleted} replaced chunks")
            return deleted

        except Exception as e:
            logger.error(f"Error deleting {len(ids)} chunks by id: {e}")
            return 0

    async def record_message_feedback(self, record: MessageFeedbackRecord) -> Dict[str, Any]:
        """
        Persist feedback on an assistant message.

        Raises on failure; the feedback learner decides how to handle it.

        Args:
            record: The feedback to store

        Returns:
            Dict[str, Any]: The inserted row
        """
        result = self.client.table(self.feedback_table_name).insert(record.model_dump(mode="json")).execute()
        return result.data[0] if result.data else {}
