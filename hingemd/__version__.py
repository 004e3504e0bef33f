"""Version information for HingeMD"""

__version__ = "0.4.0"
__version_info__ = (0, 4, 0)
__author__ = "Myunghyun Jeong"
__email__ = "mhjonathan@gm.gist.ac.kr"
__license__ = "MIT"
__copyright__ = "Copyright 2025 HingeMD"


def get_version():
    """Return the current version string"""
    return __version__


def get_version_tuple():
    """Return the current version as a tuple of integers"""
    return __version_info__
