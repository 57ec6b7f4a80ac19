# sdkdebs: Debian packages for the third party dependencies of our SDKs.
#
# Last Change: October 19, 2026

"""
The :mod:`sdkdebs.packages` module defines what gets built.

Everything `sdkdebs` builds is pinned to an exact version in this module. The
Python package lists are ordered by hand: Packages later in a list may need
packages earlier in the list to be installed before they can be built, and
there is no dependency resolution to fix a wrong order for you.
"""

# Standard library modules.
import logging

# External dependencies.
from property_manager import PropertyManager, cached_property, required_property

# Modules included in our package.
from sdkdebs.patches import remove_failing_tests, vendor_protoc
from sdkdebs.utils import normalize_package_name, split_requirement

# Initialize a logger.
logger = logging.getLogger(__name__)

PROTOBUF_VERSION = '3.3.0'
"""The version of the protobuf C++ library to package (a string)."""

PROTOBUF_SOURCE_URL = 'https://github.com/google/protobuf/releases/download/v{version}/protobuf-cpp-{version}.tar.gz'
"""Where the protobuf C++ source release is downloaded from (a format string)."""

PROTOC_URL = 'https://github.com/google/protobuf/releases/download/v{version}/protoc-{version}-linux-x86_64.zip'
"""Where the ``protoc`` binary release is downloaded from (a format string)."""

NATIVE_DEPENDENCIES = (
    ('libssl1.0.0', 'http://security.ubuntu.com/ubuntu/pool/main/o/openssl1.0/libssl1.0.0_1.0.2n-1ubuntu5.13_amd64.deb'),
    ('libffi6', 'http://archive.ubuntu.com/ubuntu/pool/main/libf/libffi/libffi6_3.2.1-8_amd64.deb'),
)
"""
Shared libraries needed to build and run the converted Python packages.

A tuple of (Debian package name, archive URL) tuples. These are installed on
the build host and stay installed afterwards.
"""

BUILD_REQUIREMENTS = (
    'stdeb==0.8.5',
    'setuptools_scm==1.15.0',
    'pytest-runner==2.11.1',
    'pycparser==2.17',
    'cffi==1.10.0',
)
"""
Python packages needed to build the packages in :data:`PYTHON_PACKAGES`.

Installed with pip (in this order) before the build and uninstalled again
afterwards, so that the build host isn't polluted.
"""

PYTHON_PACKAGES = (
    'setuptools_scm==1.15.0',
    'six==1.10.0',
    'pycparser==2.17',
    'cffi==1.10.0',
    'asn1crypto==0.22.0',
    'idna==2.5',
    'pyparsing==2.2.0',
    'packaging==16.8',
    'cryptography==1.7.2',
    'chardet==3.0.4',
    'multidict==2.1.6',
    'async_timeout==1.2.0',
    'yarl==0.10.3',
    'aiohttp==2.0.7',
    'protobuf==3.3.0',
)
"""
The Python packages to convert to Debian packages.

.. warning:: The order of this list matters! Each converted package is
             installed right after it's built, and later packages may depend
             on that.
"""

KNOWN_PACKAGES = {
    'async_timeout': dict(tarball_name='async-timeout'),
    'idna': dict(patches=(remove_failing_tests('tests/test_idna_uts46.py'),)),
    'protobuf': dict(patches=(vendor_protoc,)),
}
"""
Packages that don't follow the default naming conventions or need patching.

The keys are lowercased Python package names, the values are dictionaries
with any of the keys ``tarball_name``, ``debian_name`` and ``patches`` (refer
to :class:`PackageSpec` for what these mean).
"""


class PackageSpec(PropertyManager):

    """
    A pinned Python package and the names it goes by.

    Here's an example:

    >>> from sdkdebs.packages import PackageSpec
    >>> spec = PackageSpec('async_timeout==1.2.0')
    >>> spec.tarball_name, spec.debian_name, spec.version
    ('async-timeout', 'async-timeout', '1.2.0')
    """

    def __init__(self, pip_name, **options):
        """
        Initialize a :class:`PackageSpec` object.

        :param pip_name: The pip requirement (a string like ``name==version``).
        :param options: Any keyword arguments are passed on to the initializer
                        of the :class:`~property_manager.PropertyManager` class.
        """
        super(PackageSpec, self).__init__(pip_name=pip_name, **options)

    @required_property
    def pip_name(self):
        """The pip requirement as given by the caller (a string)."""

    @cached_property
    def python_name(self):
        """The name of the Python package (the part of :attr:`pip_name` before ``==``)."""
        return split_requirement(self.pip_name)[0]

    @cached_property
    def version(self):
        """The pinned version (a string) or :data:`None` when :attr:`pip_name` isn't pinned."""
        return split_requirement(self.pip_name)[1]

    @cached_property
    def overrides(self):
        """The entry for this package in :data:`KNOWN_PACKAGES` (a dictionary)."""
        return KNOWN_PACKAGES.get(self.python_name.lower(), {})

    @cached_property
    def tarball_name(self):
        """
        The name used by the source distribution archive (a string).

        This is also the name of the directory the archive unpacks to (minus
        the version suffix).
        """
        return self.overrides.get('tarball_name', self.python_name)

    @cached_property
    def debian_name(self):
        """
        The name of the converted package without the ``python3-`` prefix (a string).

        Defaults to the result of :func:`.normalize_package_name()`.
        """
        return self.overrides.get('debian_name', normalize_package_name(self.python_name))

    @cached_property
    def patches(self):
        """The patch hooks to apply to the unpacked source tree (a tuple of callables)."""
        return tuple(self.overrides.get('patches', ()))

    @cached_property
    def archive_pattern(self):
        """
        A shell style pattern matching the converted package archive (a string).

        For example ``python3-async-timeout_1.2.0*.deb``.
        """
        return 'python3-%s_%s*.deb' % (self.debian_name, self.version or '')

    def __str__(self):
        """The pip requirement (a string)."""
        return self.pip_name
