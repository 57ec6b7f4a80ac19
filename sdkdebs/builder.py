# sdkdebs: Debian packages for the third party dependencies of our SDKs.
#
# Last Change: October 19, 2026

"""
The :mod:`sdkdebs.builder` module contains the build logic.

This module defines the :class:`DebBuilder` class which provides the intended
way for external Python code to interface with `sdkdebs`. Builds are strictly
sequential: the protobuf C++ library is built first, followed by the Python
packages in :data:`~sdkdebs.packages.PYTHON_PACKAGES` (in order).

All external commands are executed through an :mod:`executor` command context
(see :attr:`DebBuilder.context`). The first command that fails aborts the
whole build (there is no retry) but scoped build directories are always
cleaned up and the Python build requirements are always uninstalled.
"""

# Standard library modules.
import configparser
import logging
import os
import shutil

# External dependencies.
from deb_pkg_tools.utils import find_debian_architecture
from executor.contexts import LocalContext
from humanfriendly import Timer, format_path
from humanfriendly.text import compact, concatenate, pluralize
from property_manager import PropertyManager, lazy_property, mutable_property, required_property, set_property

# Modules included in our package.
from sdkdebs.exceptions import BuildFailed, MissingArtifactError
from sdkdebs.packages import (
    BUILD_REQUIREMENTS,
    NATIVE_DEPENDENCIES,
    PROTOBUF_SOURCE_URL,
    PROTOBUF_VERSION,
    PROTOC_URL,
    PYTHON_PACKAGES,
    PackageSpec,
)
from sdkdebs.utils import PackageRepository, TemporaryDirectory, find_single_directory, split_requirement

# Initialize a logger.
logger = logging.getLogger(__name__)

SOURCE_ARCHIVE_EXTENSIONS = ('.tar.gz', '.tgz', '.tar.bz2', '.zip')
"""Filename extensions of source distribution archives that we know how to unpack."""


class BuildResult(PropertyManager):

    """The outcome of building one package."""

    ALREADY_BUILT = 'already-built'
    """The package archive was found in the package directory, nothing was done."""

    BUILT = 'built'
    """The package archive was built and copied to the package directory."""

    FAILED = 'failed'
    """Building the package failed."""

    @required_property
    def name(self):
        """The name of what was built (a string like ``protobuf`` or ``idna==2.5``)."""

    @required_property
    def status(self):
        """One of the strings :data:`ALREADY_BUILT`, :data:`BUILT` or :data:`FAILED`."""

    @mutable_property
    def archive(self):
        """The pathname of the package archive (a string or :data:`None`)."""


class DebBuilder(PropertyManager):

    """Builds Debian packages for the third party dependencies of our SDKs."""

    def __init__(self, load_configuration_files=True, load_environment_variables=True, **options):
        """
        Initialize a :class:`DebBuilder` object.

        :param load_configuration_files: When :data:`True` (the default)
                                         :func:`load_default_configuration_files()`
                                         is called automatically.
        :param load_environment_variables: When :data:`True` (the default)
                                           :func:`load_environment_variables()`
                                           is called automatically.
        :param options: Any keyword arguments are passed on to the initializer
                        of the :class:`~property_manager.PropertyManager` class.

        Keyword arguments are applied last, so they override configuration
        files and environment variables.
        """
        super(DebBuilder, self).__init__()
        if load_configuration_files:
            self.load_default_configuration_files()
        if load_environment_variables:
            self.load_environment_variables()
        self.set_properties(**options)

    @mutable_property
    def build_directory(self):
        """
        The directory where sources are downloaded and built (a string, defaults to ``./projects``).

        Every package is built in its own temporary subdirectory which is
        removed when the build of that package finishes (whether it succeeded
        or not). Downloaded native dependencies stay here between runs.
        """
        return os.path.abspath('projects')

    @build_directory.setter
    def build_directory(self, value):
        """Automatically coerce :attr:`build_directory` to an absolute pathname."""
        if not value:
            raise ValueError("Please provide a nonempty build directory!")
        set_property(self, 'build_directory', os.path.abspath(os.path.expanduser(value)))

    @mutable_property(cached=True)
    def context(self):
        """
        The command execution context (defaults to :class:`executor.contexts.LocalContext`).

        Every external command is executed using this context. Its
        :func:`~executor.contexts.AbstractContext.execute()` method raises
        :exc:`executor.ExternalCommandFailed` when a command fails.
        """
        return LocalContext()

    @mutable_property(cached=True)
    def debian_architecture(self):
        """
        The Debian architecture of the current environment (a string like ``amd64``).

        Defaults to the value reported by
        :func:`deb_pkg_tools.utils.find_debian_architecture()`.
        """
        return find_debian_architecture()

    @mutable_property
    def build_requirements(self):
        """The Python packages needed to build :attr:`python_packages` (defaults to :data:`.BUILD_REQUIREMENTS`)."""
        return BUILD_REQUIREMENTS

    @mutable_property
    def native_dependencies(self):
        """The native shared libraries to install (defaults to :data:`.NATIVE_DEPENDENCIES`)."""
        return NATIVE_DEPENDENCIES

    @mutable_property
    def package_directory(self):
        """The directory where generated ``*.deb`` archives are stored (a string, defaults to ``./packages``)."""
        return os.path.abspath('packages')

    @package_directory.setter
    def package_directory(self, value):
        """Automatically coerce :attr:`package_directory` to an absolute pathname."""
        if not value:
            raise ValueError("Please provide a nonempty package directory!")
        set_property(self, 'package_directory', os.path.abspath(os.path.expanduser(value)))

    @mutable_property
    def protobuf_version(self):
        """The version of the protobuf C++ library to build (defaults to :data:`.PROTOBUF_VERSION`)."""
        return PROTOBUF_VERSION

    @mutable_property
    def python_executable(self):
        """The Python interpreter used to run pip and stdeb (a string, defaults to ``python3``)."""
        return 'python3'

    @mutable_property
    def python_packages(self):
        """The Python packages to convert, in order (defaults to :data:`.PYTHON_PACKAGES`)."""
        return PYTHON_PACKAGES

    @property
    def repository(self):
        """The :class:`.PackageRepository` for :attr:`package_directory`."""
        return PackageRepository(self.package_directory)

    @lazy_property
    def scripts(self):
        """
        Mapping of Python package names to shell commands (a dictionary).

        The keys of this dictionary are lowercased Python package names. The
        commands are executed in the unpacked source tree after the built in
        patches have been applied (see :func:`set_conversion_command()`).
        """
        return {}

    def set_build_directory(self, directory):
        """Set the value of :attr:`build_directory`."""
        self.build_directory = directory

    def set_package_directory(self, directory):
        """Set the value of :attr:`package_directory`."""
        self.package_directory = directory

    def set_python_executable(self, python):
        """
        Set the Python interpreter used to run pip and stdeb.

        :param python: The name or pathname of a Python interpreter (a string).
        :raises: :exc:`~exceptions.ValueError` when no interpreter is provided
                 (e.g. an empty string).
        """
        if not python:
            raise ValueError("Please provide a nonempty Python executable!")
        self.python_executable = python

    def set_conversion_command(self, python_package_name, command):
        """
        Set shell command to be executed before a Python package is built.

        :param python_package_name: The name of a Python package
                                    as found on PyPI (a string).
        :param command: The shell command to execute (a string).
        :raises: :exc:`~exceptions.ValueError` when the package name or
                 command is not provided (e.g. an empty string).
        """
        if not python_package_name:
            raise ValueError("Please provide a nonempty Python package name!")
        if not command:
            raise ValueError("Please provide a nonempty shell command!")
        self.scripts[python_package_name.lower()] = command

    def load_environment_variables(self):
        """
        Load configuration defaults from environment variables.

        The following environment variables are currently supported:

        - ``$SDKDEBS_CONFIG``
        - ``$SDKDEBS_BUILD_DIRECTORY``
        - ``$SDKDEBS_PACKAGE_DIRECTORY``
        - ``$SDKDEBS_PYTHON``
        """
        for variable, setter in (('SDKDEBS_CONFIG', self.load_configuration_file),
                                 ('SDKDEBS_BUILD_DIRECTORY', self.set_build_directory),
                                 ('SDKDEBS_PACKAGE_DIRECTORY', self.set_package_directory),
                                 ('SDKDEBS_PYTHON', self.set_python_executable)):
            value = os.environ.get(variable)
            if value is not None:
                setter(value)

    def load_configuration_file(self, configuration_file):
        """
        Load configuration defaults from a configuration file.

        :param configuration_file: The pathname of a configuration file (a
                                   string).
        :raises: :exc:`~exceptions.Exception` when the configuration file
                 cannot be loaded.

        Here's an example of the available options:

        .. code-block:: ini

           # The `sdkdebs' section contains global options.
           [sdkdebs]
           build-directory = /var/tmp/sdkdebs
           package-directory = /srv/packages
           python-executable = python3.6

           # Sections starting with `package:' contain options specific to a
           # Python package.
           [package:yarl]
           script = rm -f tests/test_quoting.py
        """
        parser = configparser.RawConfigParser()
        configuration_file = os.path.expanduser(configuration_file)
        logger.debug("Loading configuration file: %s", format_path(configuration_file))
        files_loaded = parser.read(configuration_file)
        try:
            assert len(files_loaded) == 1
            assert os.path.samefile(configuration_file, files_loaded[0])
        except Exception:
            msg = "Failed to load configuration file! (%s)"
            raise Exception(msg % configuration_file)
        # Apply the global settings in the configuration file.
        if parser.has_option('sdkdebs', 'build-directory'):
            self.set_build_directory(parser.get('sdkdebs', 'build-directory'))
        if parser.has_option('sdkdebs', 'package-directory'):
            self.set_package_directory(parser.get('sdkdebs', 'package-directory'))
        if parser.has_option('sdkdebs', 'python-executable'):
            self.set_python_executable(parser.get('sdkdebs', 'python-executable'))
        # Apply any package specific settings.
        for section in parser.sections():
            tag, _, package = section.partition(':')
            if tag == 'package' and parser.has_option(section, 'script'):
                self.set_conversion_command(package, parser.get(section, 'script'))

    def load_default_configuration_files(self):
        """
        Load configuration options from default configuration files.

        The following default configuration file locations are checked:

        - ``/etc/sdkdebs.ini``
        - ``~/.sdkdebs.ini``

        :raises: :exc:`~exceptions.Exception` when a configuration file
                 exists but cannot be loaded.
        """
        for location in ('/etc/sdkdebs.ini', os.path.expanduser('~/.sdkdebs.ini')):
            if os.path.isfile(location):
                self.load_configuration_file(location)

    def protoc_url(self, version):
        """Get the URL of the ``protoc`` release archive for the given protobuf version (a string)."""
        return PROTOC_URL.format(version=version)

    def prepare_directories(self):
        """Create :attr:`build_directory` and :attr:`package_directory` when they don't exist yet."""
        for directory in (self.build_directory, self.package_directory):
            if not os.path.isdir(directory):
                logger.info("Creating directory %s ..", format_path(directory))
                os.makedirs(directory)

    def build_all(self):
        """
        Build the protobuf C++ library and all Python packages.

        :returns: A list of :class:`BuildResult` objects (protobuf first).
        :raises: :exc:`.BuildFailed` as soon as a build step fails.
        """
        self.prepare_directories()
        results = [self.build_protobuf_package()]
        try:
            results.extend(self.build_python_packages())
        except BuildFailed as e:
            e.results[:0] = results
            raise
        return results

    def build_protobuf_package(self):
        """
        Build the protobuf C++ library as a Debian package.

        :returns: A :class:`BuildResult` object.
        :raises: :exc:`.BuildFailed` when any of the build steps fails.

        The build is skipped when ``protobuf_<version>-1_<arch>.deb`` already
        exists in :attr:`package_directory`.
        """
        version = self.protobuf_version
        filename = 'protobuf_%s-1_%s.deb' % (version, self.debian_architecture)
        if self.repository.contains(filename):
            logger.warning("Package %s already exists in %s, skipping protobuf build.",
                           filename, format_path(self.package_directory))
            return BuildResult(name='protobuf', status=BuildResult.ALREADY_BUILT,
                               archive=os.path.join(self.package_directory, filename))
        timer = Timer()
        logger.info("Building protobuf %s ..", version)
        try:
            with TemporaryDirectory(prefix='protobuf-', dir=self.build_directory) as directory:
                archive = self.download(PROTOBUF_SOURCE_URL.format(version=version), directory)
                source_directory = self.unpack(archive)
                self.context.execute('./configure', '--prefix=/usr', directory=source_directory)
                if not os.path.isdir(os.path.join(source_directory, 'debian')):
                    logger.info("Generating Debian packaging templates for protobuf ..")
                    self.context.execute(
                        'dh_make', '--single', '--yes', '--createorig',
                        '--packagename', 'protobuf_%s' % version,
                        directory=source_directory,
                    )
                self.context.execute('dpkg-buildpackage', '-us', '-uc', '-b', directory=source_directory)
                generated_archive = os.path.join(directory, filename)
                if not os.path.isfile(generated_archive):
                    raise MissingArtifactError("dpkg-buildpackage didn't generate %s!" % filename)
                result = BuildResult(name='protobuf', status=BuildResult.BUILT,
                                     archive=self.publish(generated_archive))
        except Exception as e:
            raise self.failure('protobuf') from e
        logger.info("Finished building protobuf %s in %s.", version, timer)
        return result

    def build_python_packages(self):
        """
        Convert all Python packages in :attr:`python_packages` to Debian packages.

        :returns: A list of :class:`BuildResult` objects (in build order).
        :raises: :exc:`.BuildFailed` when a package fails to build. The Python
                 build requirements are uninstalled regardless.
        """
        results = []
        self.prepare_directories()
        try:
            self.ensure_native_dependencies()
        except Exception as e:
            raise self.failure('native dependencies') from e
        try:
            self.install_build_requirements()
        except Exception as e:
            raise self.failure('build requirements') from e
        try:
            for pip_name in self.python_packages:
                try:
                    results.append(self.build_one_python_package(pip_name))
                except BuildFailed as e:
                    e.results[:0] = results
                    raise
        except Exception:
            # Report the build failure, not a cleanup failure caused by it.
            try:
                self.remove_build_requirements()
            except Exception as e:
                logger.warning("Failed to remove build requirements after failed build: %s", e)
            raise
        try:
            self.remove_build_requirements()
        except Exception as e:
            failure = self.failure('build requirements')
            failure.results[:0] = results
            raise failure from e
        archives = [r.archive for r in results]
        logger.info("Produced %s: %s", pluralize(len(archives), "package archive"),
                    concatenate(os.path.basename(a) for a in archives))
        return results

    def build_one_python_package(self, pip_name):
        """
        Convert one Python package to a Debian package using stdeb.

        :param pip_name: The pip requirement of the package (a string like
                         ``name==version``).
        :returns: A :class:`BuildResult` object.
        :raises: :exc:`.BuildFailed` when any of the build steps fails.

        The build is skipped when an archive matching
        ``python3-<name>_<version>*.deb`` already exists in
        :attr:`package_directory`. Otherwise the source distribution is
        downloaded, unpacked, patched, converted, installed (later packages may
        need it) and copied to :attr:`package_directory`.
        """
        spec = PackageSpec(pip_name)
        existing_archive = self.repository.find_archive(spec.archive_pattern)
        if existing_archive:
            logger.warning("Package %s already built: %s", spec, format_path(existing_archive))
            return BuildResult(name=spec.pip_name, status=BuildResult.ALREADY_BUILT, archive=existing_archive)
        timer = Timer()
        logger.info("Building %s ..", spec)
        try:
            with TemporaryDirectory(prefix='%s-' % spec.tarball_name, dir=self.build_directory) as directory:
                archive = self.download_source_distribution(spec, directory)
                source_directory = self.unpack(archive)
                self.apply_patches(spec, source_directory)
                generated_archive = self.run_stdeb(spec, source_directory)
                self.install_archive(generated_archive)
                result = BuildResult(name=spec.pip_name, status=BuildResult.BUILT,
                                     archive=self.publish(generated_archive))
        except Exception as e:
            raise self.failure(spec.pip_name) from e
        logger.info("Finished building %s in %s.", spec, timer)
        return result

    def ensure_native_dependencies(self):
        """
        Make sure the shared libraries in :attr:`native_dependencies` are installed.

        Packages that are already installed are skipped. Missing packages are
        downloaded to :attr:`build_directory` (unless they were downloaded
        before) and installed using ``dpkg``. They're not removed afterwards.
        """
        for name, url in self.native_dependencies:
            if self.context.test('dpkg', '-s', name, silent=True):
                logger.warning("Native dependency %s is already installed, skipping.", name)
                continue
            archive = os.path.join(self.build_directory, os.path.basename(url))
            if os.path.isfile(archive):
                logger.info("Using previously downloaded %s.", format_path(archive))
            else:
                self.download(url, self.build_directory)
            self.install_archive(archive)

    def install_build_requirements(self):
        """Install the Python packages in :attr:`build_requirements` (in order)."""
        logger.info("Installing build requirements (%s) ..", concatenate(self.build_requirements))
        for requirement in self.build_requirements:
            self.context.execute(self.python_executable, '-m', 'pip', 'install', requirement, sudo=True)

    def remove_build_requirements(self):
        """Uninstall the Python packages in :attr:`build_requirements` (in reverse order)."""
        names = [split_requirement(r)[0] for r in reversed(self.build_requirements)]
        logger.info("Removing build requirements (%s) ..", concatenate(names))
        for name in names:
            self.context.execute(self.python_executable, '-m', 'pip', 'uninstall', '--yes', name, sudo=True)

    def download(self, url, directory):
        """
        Download a file.

        :param url: The URL to download (a string).
        :param directory: The directory to save the file in (a string).
        :returns: The pathname of the downloaded file (a string).

        The file is downloaded under a temporary name and renamed when the
        download is complete, so an interrupted download is never mistaken
        for a complete one.
        """
        pathname = os.path.join(directory, os.path.basename(url))
        logger.info("Downloading %s ..", url)
        self.context.execute('wget', '--quiet', '--output-document', pathname + '.part', url)
        os.rename(pathname + '.part', pathname)
        return pathname

    def download_source_distribution(self, spec, directory):
        """
        Download the source distribution of a Python package using pip.

        :param spec: A :class:`.PackageSpec` object.
        :param directory: The directory to download to (a string).
        :returns: The pathname of the source distribution archive (a string).
        :raises: :exc:`.MissingArtifactError` when pip didn't download an
                 archive that we recognize.
        """
        self.context.execute(
            self.python_executable, '-m', 'pip', 'download',
            '--no-binary', ':all:', '--no-deps', '--dest', directory,
            spec.pip_name,
        )
        prefix = '%s-%s' % (spec.tarball_name, spec.version or '')
        for entry in sorted(os.listdir(directory)):
            if entry.startswith(prefix) and entry.endswith(SOURCE_ARCHIVE_EXTENSIONS):
                return os.path.join(directory, entry)
        raise MissingArtifactError(compact("""
            Failed to find source distribution archive of {name} matching
            {prefix}* in {directory}!
        """, name=spec, prefix=prefix, directory=format_path(directory)))

    def unpack(self, archive):
        """
        Unpack an archive next to itself and remove the archive.

        :param archive: The pathname of a ``*.tar.*`` or ``*.zip`` archive (a string).
        :returns: The pathname of the unpacked directory (a string).
        """
        directory = os.path.dirname(archive)
        logger.debug("Unpacking %s ..", format_path(archive))
        if archive.endswith('.zip'):
            self.context.execute('unzip', '-q', archive, '-d', directory)
        else:
            self.context.execute('tar', '-xf', archive, '-C', directory)
        os.remove(archive)
        return find_single_directory(directory)

    def apply_patches(self, spec, source_directory):
        """
        Apply the patch hooks and configured shell command of a Python package.

        :param spec: A :class:`.PackageSpec` object.
        :param source_directory: The pathname of the unpacked source tree (a string).
        """
        for patch in spec.patches:
            logger.debug("Applying patch %s to %s ..", patch.__name__, spec)
            patch(self, spec, source_directory)
        command = self.scripts.get(spec.python_name.lower())
        if command:
            logger.info("Executing shell command in source tree of %s: %s", spec, command)
            self.context.execute(command, directory=source_directory, shell=True)

    def run_stdeb(self, spec, source_directory):
        """
        Convert an unpacked source distribution to a Debian package using stdeb.

        :param spec: A :class:`.PackageSpec` object.
        :param source_directory: The pathname of the unpacked source tree (a string).
        :returns: The pathname of the generated ``*.deb`` archive (a string).
        :raises: :exc:`.MissingArtifactError` when stdeb didn't generate an
                 archive matching :attr:`.PackageSpec.archive_pattern`.
        """
        self.context.execute(
            self.python_executable, 'setup.py', '--command-packages=stdeb.command',
            'sdist_dsc', '--with-python2=False', '--with-python3=True', 'bdist_deb',
            directory=source_directory,
        )
        deb_dist = os.path.join(source_directory, 'deb_dist')
        archive = PackageRepository(deb_dist).find_archive(spec.archive_pattern) if os.path.isdir(deb_dist) else None
        if not archive:
            msg = "stdeb didn't generate a package archive matching %s in %s!"
            raise MissingArtifactError(msg % (spec.archive_pattern, format_path(deb_dist)))
        return archive

    def install_archive(self, archive):
        """Install a ``*.deb`` archive using ``dpkg``."""
        logger.info("Installing %s ..", format_path(archive))
        self.context.execute('dpkg', '--install', archive, sudo=True)

    def publish(self, archive):
        """
        Copy a generated ``*.deb`` archive to :attr:`package_directory`.

        :param archive: The pathname of the generated archive (a string).
        :returns: The pathname of the copy (a string).
        """
        target = os.path.join(self.package_directory, os.path.basename(archive))
        logger.info("Copying %s to %s ..", os.path.basename(archive), format_path(self.package_directory))
        shutil.copy(archive, target)
        return target

    def failure(self, name):
        """
        Prepare the exception that reports a failed build step.

        :param name: The name of what failed to build (a string).
        :returns: A :exc:`.BuildFailed` exception (callers raise it from the
                  exception that made the build fail, the command line
                  interface logs it).
        """
        return BuildFailed(BuildResult(name=name, status=BuildResult.FAILED))
