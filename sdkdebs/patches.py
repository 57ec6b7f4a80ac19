# sdkdebs: Debian packages for the third party dependencies of our SDKs.
#
# Last Change: October 19, 2026

"""
Fixes for known build problems of specific source distributions.

Every patch hook is called with three positional arguments: the
:class:`~sdkdebs.builder.DebBuilder` doing the build, the
:class:`~sdkdebs.packages.PackageSpec` being built and the pathname of the
unpacked source tree. Hooks are attached to packages in
:data:`sdkdebs.packages.KNOWN_PACKAGES`.
"""

# Standard library modules.
import logging
import os
import shutil
import stat

# External dependencies.
from humanfriendly import format_path

# Modules included in our package.
from sdkdebs.exceptions import MissingArtifactError
from sdkdebs.utils import TemporaryDirectory

# Initialize a logger.
logger = logging.getLogger(__name__)

PROTOC_SEARCH_PATH = '"../src/protoc"'
"""How the protobuf build script looks for ``protoc`` in a full source checkout."""

PROTOC_VENDORED_PATH = '"src/protoc"'
"""Where :func:`vendor_protoc()` puts ``protoc`` in the Python source distribution."""


def vendor_protoc(builder, spec, source_directory):
    """
    Provide the ``protoc`` compiler needed to build the protobuf Python package.

    The Python source distribution of protobuf expects to be built from inside
    a checkout of the full protobuf repository, where ``protoc`` lives in
    ``../src/protoc``. We fetch the matching ``protoc`` release, move the
    binary into ``src/protoc`` inside the source tree and point ``setup.py``
    at that location.
    """
    url = builder.protoc_url(spec.version)
    target = os.path.join(source_directory, 'src', 'protoc')
    with TemporaryDirectory(prefix='protoc-', dir=builder.build_directory) as directory:
        archive = os.path.join(directory, os.path.basename(url))
        logger.info("Fetching protoc %s for %s ..", spec.version, spec.python_name)
        builder.context.execute('wget', '--quiet', '--output-document', archive, url)
        builder.context.execute('unzip', '-q', '-o', archive, 'bin/protoc', '-d', directory)
        binary = os.path.join(directory, 'bin', 'protoc')
        if not os.path.isfile(binary):
            raise MissingArtifactError("The protoc release archive doesn't contain bin/protoc! (%s)" % url)
        if not os.path.isdir(os.path.dirname(target)):
            os.makedirs(os.path.dirname(target))
        shutil.move(binary, target)
    os.chmod(target, os.stat(target).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    logger.debug("Moved protoc binary to %s.", format_path(target))
    replace_in_file(os.path.join(source_directory, 'setup.py'), PROTOC_SEARCH_PATH, PROTOC_VENDORED_PATH)


def remove_failing_tests(*filenames):
    """
    Create a patch hook that removes test modules known to fail.

    :param filenames: Pathnames of test modules relative to the root of the
                      source tree (strings).
    :returns: A patch hook (a callable).
    """
    def patch(builder, spec, source_directory):
        for filename in filenames:
            pathname = os.path.join(source_directory, filename)
            if os.path.isfile(pathname):
                logger.info("Removing known failing test from %s: %s", spec.python_name, filename)
                os.remove(pathname)
            else:
                logger.warning("Known failing test of %s not found: %s", spec.python_name, filename)
    patch.__name__ = 'remove_failing_tests'
    return patch


def replace_in_file(filename, old, new):
    """
    Replace all occurrences of a string in a text file.

    :param filename: The pathname of the file to patch (a string).
    :param old: The text to replace (a string).
    :param new: The replacement text (a string).
    :raises: :exc:`.MissingArtifactError` when `old` doesn't occur in the
             file, because that means the file no longer looks the way the
             patch expects it to.
    """
    with open(filename) as handle:
        contents = handle.read()
    if old not in contents:
        msg = "Expected to find %s in %s!"
        raise MissingArtifactError(msg % (old, format_path(filename)))
    logger.debug("Replacing %s with %s in %s ..", old, new, format_path(filename))
    with open(filename, 'w') as handle:
        handle.write(contents.replace(old, new))
