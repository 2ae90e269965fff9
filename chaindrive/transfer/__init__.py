"""
Transfer Module - Upload/Download of Record Chains

Drives a record store to upload, download, list and delete files.
"""

from .uploader import FileUploader, UploadResult, LINK_ATOMIC, LINK_EDIT, LINK_MODES
from .downloader import FileDownloader, DownloadResult
from .catalog import Catalog, CatalogEntry, PAGE_SIZE

__all__ = [
    'FileUploader',
    'UploadResult',
    'LINK_ATOMIC',
    'LINK_EDIT',
    'LINK_MODES',
    'FileDownloader',
    'DownloadResult',
    'Catalog',
    'CatalogEntry',
    'PAGE_SIZE',
]
