"""
Storage Abstraction - one async API over local, GCS, S3 and Backblaze B2 storage
"""

__version__ = '1.0.0'
