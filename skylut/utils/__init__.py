"""
Skylut Utilities
"""

from .exr import HAS_OPENEXR, TableEXRWriter, read_table_exr, write_table_exr
