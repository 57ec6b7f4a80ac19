# sdkdebs: Debian packages for the third party dependencies of our SDKs.
#
# Last Change: October 19, 2026

"""
The top level :mod:`sdkdebs` module contains only a version number.

.. data:: __version__

   The version number of the `sdkdebs` package (a string).
"""

# Semi-standard module versioning.
__version__ = '1.0'
