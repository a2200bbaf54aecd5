# monoslam/utils/__init__.py

from .log import setup_logging
from .serialization import export_map, save_map_npz


__all__ = [
    'setup_logging',
    'export_map',
    'save_map_npz',
]
