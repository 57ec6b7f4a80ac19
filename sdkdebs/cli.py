# Command line interface for the `sdkdebs' program.
#
# Last Change: October 19, 2026

"""
Usage: sdkdebs [OPTIONS]

Build Debian packages for the third party dependencies of our SDKs: the
protobuf C++ library and a fixed list of pinned Python packages (converted
using stdeb). Packages whose *.deb archive already exists in the package
directory are skipped, so running this program twice is harmless.

The default configuration files /etc/sdkdebs.ini and ~/.sdkdebs.ini are
automatically loaded if they exist. This happens before environment
variables and command line options are processed.

Supported options:

  -b DIRECTORY

    Change the directory where sources are downloaded and built. Defaults
    to `./projects'. The directory is created if it doesn't exist.

    Can also be set using the environment variable $SDKDEBS_BUILD_DIRECTORY.

  -p DIRECTORY

    Change the directory where generated *.deb archives are stored. Defaults
    to `./packages'. The directory is created if it doesn't exist.

    Can also be set using the environment variable $SDKDEBS_PACKAGE_DIRECTORY.

  -h

    Show this message and exit.
"""

# Standard library modules.
import getopt
import logging
import sys

# External dependencies.
import coloredlogs
from humanfriendly.terminal import usage, warning

# Modules included in our package.
from sdkdebs.builder import DebBuilder
from sdkdebs.exceptions import BuildFailed

# Initialize a logger.
logger = logging.getLogger(__name__)


def main():
    """Command line interface for the ``sdkdebs`` program."""
    # Configure terminal output.
    coloredlogs.install()
    try:
        options, arguments = getopt.getopt(sys.argv[1:], 'b:p:h')
        if arguments:
            raise getopt.GetoptError("Unexpected positional arguments! (%s)" % ' '.join(arguments))
    except getopt.GetoptError as e:
        warning("Failed to parse command line arguments: %s", e)
        sys.exit(2)
    if any(option == '-h' for option, _ in options):
        usage(__doc__)
        return
    try:
        # Initialize a package builder.
        builder = DebBuilder()
        for option, value in options:
            if option == '-b':
                builder.set_build_directory(value)
            elif option == '-p':
                builder.set_package_directory(value)
    except Exception as e:
        warning("Failed to initialize package builder: %s", e)
        sys.exit(1)
    # Build the packages.
    try:
        builder.build_all()
    except BuildFailed as e:
        logger.error("%s (%s) Aborting.", e, e.__cause__)
        sys.exit(e.returncode or 1)
    except Exception:
        logger.exception("Caught an unhandled exception!")
        sys.exit(1)
