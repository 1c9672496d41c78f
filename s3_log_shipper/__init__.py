"""
S3 Log Shipper
Debounced shipping of closed log files to S3
"""

from s3_log_shipper.sink import S3Sink, S3UploadHandler, add_s3_handler

__version__ = "1.0.0"

__all__ = ["S3Sink", "S3UploadHandler", "add_s3_handler", "__version__"]
