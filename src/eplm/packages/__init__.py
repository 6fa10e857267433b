"""
EPLM Package Handling

Download caching, archive staging, directory promotion and web asset
publication for extension packages.
"""

from .assets import AssetPublisher
from .cache import PackageCache, PackageFetcher
from .stager import ArchiveStager, PACKAGE_MARKERS, TEMPLATE_MARKERS
from .swapper import DirectorySwapper, PRESERVED_DIRECTORIES

__all__ = [
    "AssetPublisher",
    "PackageCache",
    "PackageFetcher",
    "ArchiveStager",
    "PACKAGE_MARKERS",
    "TEMPLATE_MARKERS",
    "DirectorySwapper",
    "PRESERVED_DIRECTORIES",
]
