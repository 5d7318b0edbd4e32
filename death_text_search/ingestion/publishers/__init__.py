"""Result publishers"""

from .result_publisher import (
    CSVPublisher,
    DataPublisher,
    ParquetPublisher,
    PublisherFactory,
    PublishResult,
    PublishSpec,
    ResultPublisher,
    get_result_publish_specs,
    read_published_table,
)

__all__ = [
    "DataPublisher",
    "ParquetPublisher",
    "CSVPublisher",
    "PublisherFactory",
    "PublishSpec",
    "PublishResult",
    "ResultPublisher",
    "get_result_publish_specs",
    "read_published_table",
]
