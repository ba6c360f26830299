"""imgjobs CLI"""

from imgjobs import __version__

__all__ = ["__version__"]
