"""Asset download helpers."""

from nomic_chat.assets.catalog import current_platform, executable_url, model_url
from nomic_chat.assets.provisioner import AssetProvisioner, ProgressCallback

__all__ = [
    "AssetProvisioner",
    "ProgressCallback",
    "current_platform",
    "executable_url",
    "model_url",
]
