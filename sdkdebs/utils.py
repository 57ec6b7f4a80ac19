# sdkdebs: Debian packages for the third party dependencies of our SDKs.
#
# Last Change: October 19, 2026

"""The :mod:`sdkdebs.utils` module contains miscellaneous code."""

# Standard library modules.
import fnmatch
import logging
import os
import re
import shutil
import tempfile

# External dependencies.
from deb_pkg_tools.package import parse_filename
from humanfriendly import format_path
from property_manager import PropertyManager, required_property

# Modules included in our package.
from sdkdebs.exceptions import MissingArtifactError

# Initialize a logger.
logger = logging.getLogger(__name__)


class PackageRepository(PropertyManager):

    """
    Very simple abstraction for a directory containing ``*.deb`` archives.

    Used by :class:`sdkdebs.builder.DebBuilder` to recognize which packages
    have previously been built (and so can be skipped). The directory is
    listed again on every lookup, so the answer only depends on the files
    that exist at the time of the call.
    """

    def __init__(self, directory):
        """
        Initialize a :class:`PackageRepository` object.

        :param directory: The pathname of a directory containing ``*.deb`` archives (a string).
        """
        super(PackageRepository, self).__init__(directory=directory)

    @property
    def archives(self):
        """
        A list of package archives in :attr:`directory`, sorted by filename.

        Filenames are parsed using :func:`deb_pkg_tools.package.parse_filename()`.
        Files whose name doesn't follow the ``name_version_architecture.deb``
        convention are ignored. A directory that can't be listed raises an
        exception instead of looking empty.
        """
        archives = []
        for entry in sorted(os.listdir(self.directory)):
            pathname = os.path.join(self.directory, entry)
            if entry.endswith('.deb') and os.path.isfile(pathname):
                try:
                    archives.append(parse_filename(pathname))
                except ValueError:
                    logger.debug("Ignoring file that isn't a package archive: %s", format_path(pathname))
        return archives

    @required_property
    def directory(self):
        """The pathname of a directory containing ``*.deb`` archives (a string)."""

    def contains(self, filename):
        """
        Check whether the repository contains an archive with the given base name.

        :param filename: The base name of a ``*.deb`` archive (a string).
        :returns: :data:`True` if the archive exists, :data:`False` otherwise.
        """
        return any(os.path.basename(a.filename) == filename for a in self.archives)

    def find_archive(self, pattern):
        """
        Find a package archive whose base name matches a shell style pattern.

        :param pattern: A pattern for :func:`fnmatch.fnmatch()` (a string).
        :returns: The pathname of the last matching archive (a string) or
                  :data:`None` when nothing matches.
        """
        matches = [a.filename for a in self.archives
                   if fnmatch.fnmatch(os.path.basename(a.filename), pattern)]
        return matches[-1] if matches else None


class TemporaryDirectory(object):

    """
    Easy temporary directory creation & cleanup using the :keyword:`with` statement.

    Here's an example of how to use this:

    .. code-block:: python

       with TemporaryDirectory(dir='projects') as directory:
           # Do something useful here.
           assert os.path.isdir(directory)

    The directory is removed on every exit path, including exceptions.
    """

    def __init__(self, **options):
        """
        Initialize context manager that manages creation & cleanup of temporary directory.

        :param options: Any keyword arguments are passed on to
                        :func:`tempfile.mkdtemp()`.
        """
        self.options = options

    def __enter__(self):
        """Create the temporary directory."""
        self.temporary_directory = tempfile.mkdtemp(**self.options)
        logger.debug("Created temporary directory: %s", format_path(self.temporary_directory))
        return self.temporary_directory

    def __exit__(self, exc_type, exc_value, traceback):
        """Destroy the temporary directory."""
        logger.debug("Cleaning up temporary directory: %s", format_path(self.temporary_directory))
        shutil.rmtree(self.temporary_directory, ignore_errors=True)
        del self.temporary_directory


def find_single_directory(parent):
    """
    Find the one directory an archive was unpacked to.

    :param parent: The pathname of the directory the archive was unpacked in (a string).
    :returns: The pathname of the unpacked directory (a string).
    :raises: :exc:`.MissingArtifactError` when there isn't exactly one
             subdirectory in `parent`.
    """
    directories = sorted(e for e in os.listdir(parent) if os.path.isdir(os.path.join(parent, e)))
    if len(directories) != 1:
        msg = "Expected a single unpacked directory in %s, found %i!"
        raise MissingArtifactError(msg % (format_path(parent), len(directories)))
    return os.path.join(parent, directories[0])


def normalize_package_name(python_package_name):
    """
    Normalize Python package name to be used as Debian package name.

    :param python_package_name: The name of a Python package
                                as found on PyPI (a string).
    :returns: The normalized name (a string).

    >>> from sdkdebs.utils import normalize_package_name
    >>> normalize_package_name('setuptools_scm')
    'setuptools-scm'
    >>> normalize_package_name('Cython')
    'cython'
    """
    return re.sub('[^a-z0-9]+', '-', python_package_name.lower()).strip('-')


def split_requirement(pip_name):
    """
    Split a pinned pip requirement into a name and a version.

    :param pip_name: A requirement like ``name`` or ``name==version`` (a string).
    :returns: A tuple with two values: The package name (a string) and the
              pinned version (a string or :data:`None`).
    :raises: :exc:`~exceptions.ValueError` when the name is empty.
    """
    name, _, version = pip_name.partition('==')
    name = name.strip()
    if not name:
        raise ValueError("Please provide a nonempty package name! (%r)" % pip_name)
    return name, version.strip() or None
