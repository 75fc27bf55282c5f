"""DynamoDB backed cache of raw activity pages."""
import logging
import threading
import time
import zlib
from datetime import datetime
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from scraper.errors import CacheError
from storage.page_cache import PageCache

logger = logging.getLogger(__name__)


class DynamoDBPageCache(PageCache):
    """
    Page cache keeping one item per (source, configuration) in DynamoDB.

    Items hold the zlib compressed page and the epoch second it was
    fetched at, so a single activity page stays well below the item
    size limit.
    """

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table (hash key: cache_key)
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        # boto3 resources must not be used from several threads at once
        self._lock = threading.Lock()
        logger.info(f"Initialized DynamoDBPageCache for table: {table_name}")

    @staticmethod
    def cache_key(source_name: str, config_name: str) -> str:
        return f"{source_name}#{config_name}"

    def get_cached_contents(
        self,
        source_name: str,
        config_name: str,
        boundary_time: datetime
    ) -> Optional[str]:
        key = self.cache_key(source_name, config_name)
        try:
            with self._lock:
                response = self.table.get_item(Key={'cache_key': key})
        except ClientError as e:
            logger.error(f"Error reading cached page {key}: {e}")
            raise CacheError(f"Error reading cached page {key}: {e}") from e

        item = response.get('Item')
        if item is None:
            logger.debug(f"No cached page for {key}")
            return None

        fetched_at = int(item['fetched_at'])
        if fetched_at < boundary_time.timestamp():
            logger.debug(f"Cached page for {key} is older than {boundary_time}")
            return None

        return zlib.decompress(item['contents'].value).decode('utf-8')

    def write_to_cache(self, source_name: str, config_name: str, contents: str) -> None:
        key = self.cache_key(source_name, config_name)
        item = {
            'cache_key': key,
            'contents': zlib.compress(contents.encode('utf-8')),
            'fetched_at': int(time.time())
        }
        try:
            with self._lock:
                self.table.put_item(Item=item)
        except ClientError as e:
            logger.error(f"Error writing cached page {key}: {e}")
            raise CacheError(f"Error writing cached page {key}: {e}") from e
        logger.info(f"Cached activity page for {key}")
