# Automated tests for the `sdkdebs' package.
#
# Last Change: October 19, 2026

"""
The :mod:`sdkdebs.tests` module contains the automated tests for `sdkdebs`.

Building the real packages takes a long time, needs network access and root
privileges, so the tests replace the :mod:`executor` command context of
:class:`~sdkdebs.builder.DebBuilder` with a :class:`RecordingContext` that
remembers the commands it was given and imitates their effect on the file
system. The tests are written to be compatible with :mod:`unittest` but are
normally run using pytest.
"""

# Standard library modules.
import logging
import os
import stat
from unittest import mock

# External dependencies.
import coloredlogs
from humanfriendly.testing import TestCase, run_cli

# Modules included in our package.
from sdkdebs.builder import BuildResult, DebBuilder
from sdkdebs.cli import main
from sdkdebs.exceptions import BuildFailed, MissingArtifactError
from sdkdebs.packages import BUILD_REQUIREMENTS, PYTHON_PACKAGES, PackageSpec
from sdkdebs.patches import remove_failing_tests, replace_in_file, vendor_protoc
from sdkdebs.utils import (
    PackageRepository,
    TemporaryDirectory,
    find_single_directory,
    normalize_package_name,
    split_requirement,
)

# Initialize a logger.
logger = logging.getLogger(__name__)


def setUpModule():
    """Enable verbose logging to the terminal, to help with post-mortem analysis of failures."""
    coloredlogs.install()
    coloredlogs.increase_verbosity()


def touch(filename, contents=''):
    """Create a file (and its parent directories)."""
    directory = os.path.dirname(filename)
    if not os.path.isdir(directory):
        os.makedirs(directory)
    with open(filename, 'w') as handle:
        handle.write(contents)


class SimulatedFailure(Exception):

    """Raised by :class:`RecordingContext` in place of :exc:`executor.ExternalCommandFailed`."""

    returncode = 3


class RecordingContext(object):

    """Fake :mod:`executor` command context that records commands and fakes their side effects."""

    def __init__(self, installed=(), failing_commands=()):
        self.commands = []
        self.options = []
        self.installed = set(installed)
        self.pip_installed = []
        self.failing_commands = set(failing_commands)

    def execute(self, *command, **options):
        self.commands.append(command)
        self.options.append(options)
        if self.failing_commands.intersection(command):
            raise SimulatedFailure("Simulated failure of %s!" % ' '.join(command))
        directory = options.get('directory')
        if command[0] == 'wget':
            touch(command[command.index('--output-document') + 1])
        elif command[0] == 'tar':
            self.unpack(command[2], command[command.index('-C') + 1])
        elif command[0] == 'unzip':
            target = command[command.index('-d') + 1]
            if 'bin/protoc' in command:
                touch(os.path.join(target, 'bin', 'protoc'), '#!/bin/sh\n')
            else:
                self.unpack(command[2], target)
        elif command[0] == 'dh_make':
            os.mkdir(os.path.join(directory, 'debian'))
        elif command[0] == 'dpkg-buildpackage':
            name, _, version = os.path.basename(directory).rpartition('-')
            touch(os.path.join(os.path.dirname(directory), '%s_%s-1_amd64.deb' % (name, version)))
        elif command[0] == 'dpkg':
            self.installed.add(os.path.basename(command[-1]).split('_')[0])
        elif 'pip' in command:
            self.pip(*command[command.index('pip') + 1:])
        elif 'setup.py' in command:
            name, _, version = os.path.basename(directory).rpartition('-')
            filename = 'python3-%s_%s-1_all.deb' % (normalize_package_name(name), version)
            touch(os.path.join(directory, 'deb_dist', filename))

    def test(self, *command, **options):
        self.commands.append(command)
        self.options.append(options)
        return command[:2] == ('dpkg', '-s') and command[2] in self.installed

    def pip(self, subcommand, *arguments):
        if subcommand == 'download':
            spec = PackageSpec(arguments[-1])
            directory = arguments[arguments.index('--dest') + 1]
            touch(os.path.join(directory, '%s-%s.tar.gz' % (spec.tarball_name, spec.version)))
        elif subcommand == 'install':
            self.pip_installed.append(split_requirement(arguments[-1])[0])
        elif subcommand == 'uninstall':
            self.pip_installed.remove(arguments[-1])

    def unpack(self, archive, target):
        basename = os.path.basename(archive)
        for extension in ('.tar.gz', '.zip'):
            if basename.endswith(extension):
                basename = basename[:-len(extension)]
        source_directory = os.path.join(target, basename.replace('protobuf-cpp-', 'protobuf-'))
        touch(os.path.join(source_directory, 'setup.py'), 'protoc = "../src/protoc"\n')
        touch(os.path.join(source_directory, 'tests', 'test_idna_uts46.py'))

    def find_commands(self, *words):
        """Find the recorded commands that contain all of the given words."""
        return [c for c in self.commands if all(w in c for w in words)]


class SdkDebsTestCase(TestCase):

    """:mod:`unittest` compatible container for the test suite of `sdkdebs`."""

    def create_builder(self, directory, **options):
        """Create a :class:`.DebBuilder` isolated from the host system."""
        options.setdefault('context', RecordingContext())
        return DebBuilder(
            load_configuration_files=False,
            load_environment_variables=False,
            build_directory=os.path.join(directory, 'projects'),
            package_directory=os.path.join(directory, 'packages'),
            debian_architecture='amd64',
            **options
        )

    def test_package_name_derivation(self):
        """Test the tarball and Debian names derived from pip requirements."""
        spec = PackageSpec('async_timeout==1.2.0')
        assert spec.python_name == 'async_timeout'
        assert spec.version == '1.2.0'
        assert spec.tarball_name == 'async-timeout'
        assert spec.debian_name == 'async-timeout'
        spec = PackageSpec('cryptography==1.7.2')
        assert spec.tarball_name == 'cryptography'
        assert spec.debian_name == 'cryptography'
        spec = PackageSpec('setuptools_scm==1.15.0')
        assert spec.tarball_name == 'setuptools_scm'
        assert spec.debian_name == 'setuptools-scm'
        assert spec.archive_pattern == 'python3-setuptools-scm_1.15.0*.deb'
        # Only the known problem packages are patched.
        assert len(PackageSpec('protobuf==3.3.0').patches) == 1
        assert len(PackageSpec('idna==2.5').patches) == 1
        assert PackageSpec('six==1.10.0').patches == ()

    def test_requirement_splitting(self):
        """Test parsing of pinned and unpinned requirements."""
        assert split_requirement('six==1.10.0') == ('six', '1.10.0')
        assert split_requirement('six') == ('six', None)
        self.assertRaises(ValueError, split_requirement, '==1.0')
        assert PackageSpec('six').archive_pattern == 'python3-six_*.deb'
        assert normalize_package_name('Async_Timeout') == 'async-timeout'

    def test_package_lists(self):
        """Sanity check the pinned package lists."""
        assert all('==' in pip_name for pip_name in PYTHON_PACKAGES)
        assert all('==' in pip_name for pip_name in BUILD_REQUIREMENTS)
        assert any(pip_name.startswith('stdeb==') for pip_name in BUILD_REQUIREMENTS)
        # Dependencies are built before the packages that need them.
        assert PYTHON_PACKAGES.index('cffi==1.10.0') < PYTHON_PACKAGES.index('cryptography==1.7.2')
        assert PYTHON_PACKAGES.index('multidict==2.1.6') < PYTHON_PACKAGES.index('aiohttp==2.0.7')

    def test_argument_validation(self):
        """Test argument validation done by the command line interface and setters."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(directory)
            self.assertRaises(ValueError, builder.set_build_directory, '')
            self.assertRaises(ValueError, builder.set_package_directory, '')
            self.assertRaises(ValueError, builder.set_python_executable, '')
            self.assertRaises(ValueError, builder.set_conversion_command, 'yarl', '')
            self.assertRaises(ValueError, builder.set_conversion_command, '', 'true')
        for arguments in (['-x'], ['--help'], ['-b'], ['unexpected-argument']):
            exit_code, output = run_cli(main, *arguments)
            assert exit_code == 2
        exit_code, output = run_cli(main, '-h')
        assert exit_code == 0
        assert 'Usage: sdkdebs' in output

    def test_command_line_options(self):
        """Test that the ``-b`` and ``-p`` options reach the builder."""
        with mock.patch('sdkdebs.cli.DebBuilder') as builder_class:
            exit_code, output = run_cli(main, '-b', '/tmp/build-here', '-p', '/tmp/packages-here')
            assert exit_code == 0
            builder = builder_class.return_value
            builder.set_build_directory.assert_called_once_with('/tmp/build-here')
            builder.set_package_directory.assert_called_once_with('/tmp/packages-here')
            builder.build_all.assert_called_once_with()

    def test_command_line_exit_status(self):
        """Test that the exit status of a failing external command is propagated."""
        def build_all():
            try:
                raise SimulatedFailure("dpkg-buildpackage failed!")
            except SimulatedFailure as e:
                raise BuildFailed(BuildResult(name='protobuf', status=BuildResult.FAILED)) from e
        with mock.patch('sdkdebs.cli.DebBuilder') as builder_class:
            builder_class.return_value.build_all.side_effect = build_all
            exit_code, output = run_cli(main)
            assert exit_code == SimulatedFailure.returncode

    def test_directories_created(self):
        """Test that missing directories are created before anything is built."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(os.path.join(directory, 'does', 'not', 'exist'))
            builder.prepare_directories()
            assert os.path.isdir(builder.build_directory)
            assert os.path.isdir(builder.package_directory)

    def test_protobuf_skipped(self):
        """Test that protobuf isn't rebuilt when its archive exists."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(directory)
            builder.prepare_directories()
            touch(os.path.join(builder.package_directory, 'protobuf_3.3.0-1_amd64.deb'))
            result = builder.build_protobuf_package()
            assert result.status == BuildResult.ALREADY_BUILT
            assert not builder.context.commands

    def test_protobuf_build(self):
        """Test the steps of the protobuf build."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(directory)
            builder.prepare_directories()
            result = builder.build_protobuf_package()
            assert result.status == BuildResult.BUILT
            assert result.archive == os.path.join(builder.package_directory, 'protobuf_3.3.0-1_amd64.deb')
            assert os.path.isfile(result.archive)
            context = builder.context
            assert context.find_commands('./configure', '--prefix=/usr')
            assert context.find_commands('dh_make', '--createorig')
            assert context.find_commands('dpkg-buildpackage', '-us', '-uc', '-b')
            # The scoped build directory is gone.
            assert os.listdir(builder.build_directory) == []

    def test_full_build(self):
        """Test a complete build followed by a second build that should do nothing."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(directory)
            results = builder.build_all()
            assert len(results) == 1 + len(PYTHON_PACKAGES)
            assert all(r.status == BuildResult.BUILT for r in results)
            archives = sorted(os.listdir(builder.package_directory))
            assert 'protobuf_3.3.0-1_amd64.deb' in archives
            assert 'python3-async-timeout_1.2.0-1_all.deb' in archives
            assert 'python3-setuptools-scm_1.15.0-1_all.deb' in archives
            assert len(archives) == len(results)
            context = builder.context
            # Every converted package was installed, in order.
            installed = [os.path.basename(c[-1]) for c in context.find_commands('dpkg', '--install')]
            assert installed[:2] == ['libssl1.0.0_1.0.2n-1ubuntu5.13_amd64.deb', 'libffi6_3.2.1-8_amd64.deb']
            assert installed[2].startswith('python3-setuptools-scm_')
            assert installed[-1].startswith('python3-protobuf_')
            # The build requirements were removed again.
            assert context.pip_installed == []
            # The protobuf patch was applied.
            assert context.find_commands('unzip', 'bin/protoc')
            # Build again, this time nothing should be built.
            builder.context = RecordingContext(installed=context.installed)
            results = builder.build_all()
            assert all(r.status == BuildResult.ALREADY_BUILT for r in results)
            assert not builder.context.find_commands('wget')
            assert not builder.context.find_commands('download')
            assert sorted(os.listdir(builder.package_directory)) == archives

    def test_native_dependencies_skipped(self):
        """Test that installed native dependencies aren't downloaded again."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(directory, context=RecordingContext(installed=['libssl1.0.0', 'libffi6']))
            builder.prepare_directories()
            builder.ensure_native_dependencies()
            assert not builder.context.find_commands('wget')
            assert not builder.context.find_commands('dpkg', '--install')

    def test_failed_build(self):
        """Test that a failing command aborts the build and cleans up after itself."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(directory, context=RecordingContext(failing_commands=['bdist_deb']))
            builder.prepare_directories()
            touch(os.path.join(builder.package_directory, 'protobuf_3.3.0-1_amd64.deb'))
            with self.assertRaises(BuildFailed) as context:
                builder.build_all()
            failure = context.exception
            assert failure.result.status == BuildResult.FAILED
            assert failure.result.name == PYTHON_PACKAGES[0]
            assert [r.status for r in failure.results] == [BuildResult.ALREADY_BUILT]
            assert failure.returncode == SimulatedFailure.returncode
            assert isinstance(failure.__cause__, SimulatedFailure)
            assert builder.context.pip_installed == []
            assert not [e for e in os.listdir(builder.build_directory) if not e.endswith('.deb')]

    def test_failed_build_logged_once(self):
        """Test that a build failure is only logged by the command line interface."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(directory, context=RecordingContext(failing_commands=['dpkg-buildpackage']))
            with mock.patch('sdkdebs.builder.logger') as builder_logger:
                self.assertRaises(BuildFailed, builder.build_all)
                assert not builder_logger.error.called
            with mock.patch('sdkdebs.cli.DebBuilder', return_value=builder):
                with mock.patch('sdkdebs.cli.logger') as cli_logger:
                    exit_code, output = run_cli(main)
                    assert exit_code == SimulatedFailure.returncode
                    assert cli_logger.error.call_count == 1

    def test_failed_removal_of_build_requirements(self):
        """Test that failing to uninstall the build requirements fails a successful build."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(directory, context=RecordingContext(failing_commands=['uninstall']))
            with self.assertRaises(BuildFailed) as context:
                builder.build_all()
            failure = context.exception
            assert failure.result.name == 'build requirements'
            assert failure.result.status == BuildResult.FAILED
            assert failure.returncode == SimulatedFailure.returncode
            assert isinstance(failure.__cause__, SimulatedFailure)
            # The packages that were built are still reported.
            assert len(failure.results) == 1 + len(PYTHON_PACKAGES)
            assert all(r.status == BuildResult.BUILT for r in failure.results)
            # The command line interface exits with the status of pip.
            with mock.patch('sdkdebs.cli.DebBuilder', return_value=builder):
                exit_code, output = run_cli(main)
                assert exit_code == SimulatedFailure.returncode

    def test_failed_build_and_removal_of_build_requirements(self):
        """Test that a failing uninstall doesn't hide the failure of a package build."""
        with TemporaryDirectory() as directory:
            context = RecordingContext(failing_commands=['bdist_deb', 'uninstall'])
            builder = self.create_builder(directory, context=context)
            with self.assertRaises(BuildFailed) as exception:
                builder.build_all()
            failure = exception.exception
            assert failure.result.name == PYTHON_PACKAGES[0]
            assert [r.name for r in failure.results] == ['protobuf']
            assert failure.returncode == SimulatedFailure.returncode
            assert 'bdist_deb' in str(failure.__cause__)
            assert context.find_commands('pip', 'uninstall')

    def test_configuration_file(self):
        """Test loading of configuration files and per package shell commands."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(directory)
            configuration_file = os.path.join(directory, 'sdkdebs.ini')
            touch(configuration_file, '\n'.join([
                '[sdkdebs]',
                'build-directory = %s' % os.path.join(directory, 'elsewhere'),
                'python-executable = python3.6',
                '[package:Six]',
                'script = rm -rf documentation',
            ]))
            builder.load_configuration_file(configuration_file)
            assert builder.build_directory == os.path.join(directory, 'elsewhere')
            assert builder.python_executable == 'python3.6'
            assert builder.scripts == {'six': 'rm -rf documentation'}
            builder.prepare_directories()
            result = builder.build_one_python_package('six==1.10.0')
            assert result.status == BuildResult.BUILT
            assert builder.context.find_commands('rm -rf documentation')
            assert builder.context.find_commands('python3.6', 'setup.py')
            self.assertRaises(Exception, builder.load_configuration_file, os.path.join(directory, 'missing.ini'))

    def test_environment_variables(self):
        """Test loading of configuration defaults from environment variables."""
        with TemporaryDirectory() as directory:
            environment = dict(SDKDEBS_BUILD_DIRECTORY=os.path.join(directory, 'b'),
                               SDKDEBS_PACKAGE_DIRECTORY=os.path.join(directory, 'p'))
            with mock.patch.dict(os.environ, environment):
                builder = DebBuilder(load_configuration_files=False)
            assert builder.build_directory == os.path.join(directory, 'b')
            assert builder.package_directory == os.path.join(directory, 'p')

    def test_vendor_protoc(self):
        """Test the patch that provides ``protoc`` to the protobuf Python package."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(directory)
            builder.prepare_directories()
            source_directory = os.path.join(directory, 'protobuf-3.3.0')
            touch(os.path.join(source_directory, 'setup.py'), 'elif os.path.exists("../src/protoc"):\n')
            vendor_protoc(builder, PackageSpec('protobuf==3.3.0'), source_directory)
            protoc = os.path.join(source_directory, 'src', 'protoc')
            assert os.path.isfile(protoc)
            assert os.stat(protoc).st_mode & stat.S_IXUSR
            with open(os.path.join(source_directory, 'setup.py')) as handle:
                assert handle.read() == 'elif os.path.exists("src/protoc"):\n'
            wget = builder.context.find_commands('wget')[0]
            assert wget[-1] == 'https://github.com/google/protobuf/releases/download/v3.3.0/protoc-3.3.0-linux-x86_64.zip'
            # Patching the same tree again fails loudly.
            self.assertRaises(MissingArtifactError, vendor_protoc, builder, PackageSpec('protobuf==3.3.0'), source_directory)

    def test_remove_failing_tests(self):
        """Test the patch that removes known failing tests."""
        with TemporaryDirectory() as directory:
            touch(os.path.join(directory, 'tests', 'test_idna_uts46.py'))
            touch(os.path.join(directory, 'tests', 'test_idna.py'))
            patch = remove_failing_tests('tests/test_idna_uts46.py')
            patch(None, PackageSpec('idna==2.5'), directory)
            assert os.listdir(os.path.join(directory, 'tests')) == ['test_idna.py']
            # A missing file is only reported.
            patch(None, PackageSpec('idna==2.5'), directory)

    def test_replace_in_file(self):
        """Test the text replacement helper used by patches."""
        with TemporaryDirectory() as directory:
            filename = os.path.join(directory, 'setup.py')
            touch(filename, 'a = 1\nb = 1\n')
            replace_in_file(filename, '= 1', '= 2')
            with open(filename) as handle:
                assert handle.read() == 'a = 2\nb = 2\n'
            self.assertRaises(MissingArtifactError, replace_in_file, filename, '= 1', '= 3')

    def test_package_repository(self):
        """Test recognition of previously built archives."""
        with TemporaryDirectory() as directory:
            repository = PackageRepository(directory)
            assert repository.find_archive('python3-six_1.10.0*.deb') is None
            touch(os.path.join(directory, 'python3-six_1.10.0-1_all.deb'))
            touch(os.path.join(directory, 'protobuf_3.3.0-1_amd64.deb'))
            assert repository.find_archive('python3-six_1.10.0*.deb') == os.path.join(directory, 'python3-six_1.10.0-1_all.deb')
            assert repository.find_archive('python3-six_1.11*.deb') is None
            assert repository.contains('protobuf_3.3.0-1_amd64.deb')
            assert not repository.contains('protobuf_3.4.0-1_amd64.deb')
            # Files that aren't named like package archives are ignored.
            touch(os.path.join(directory, 'notes.deb'))
            assert not repository.contains('notes.deb')
            assert repository.find_archive('*.deb') == os.path.join(directory, 'python3-six_1.10.0-1_all.deb')
            # The last match in sorted order wins.
            touch(os.path.join(directory, 'python3-six_1.10.0-2_all.deb'))
            assert [os.path.basename(a.filename) for a in repository.archives] == [
                'protobuf_3.3.0-1_amd64.deb',
                'python3-six_1.10.0-1_all.deb',
                'python3-six_1.10.0-2_all.deb',
            ]
            assert repository.find_archive('python3-six_1.10.0*.deb') == os.path.join(directory, 'python3-six_1.10.0-2_all.deb')
            # A directory that can't be listed isn't mistaken for an empty one.
            missing = PackageRepository(os.path.join(directory, 'missing'))
            self.assertRaises(OSError, missing.find_archive, '*.deb')

    def test_unrelated_archive_in_package_directory(self):
        """Test that an unrelated ``*.deb`` file doesn't break the existence checks."""
        with TemporaryDirectory() as directory:
            builder = self.create_builder(directory)
            builder.prepare_directories()
            touch(os.path.join(builder.package_directory, 'notes.deb'))
            result = builder.build_protobuf_package()
            assert result.status == BuildResult.BUILT
            assert builder.build_protobuf_package().status == BuildResult.ALREADY_BUILT

    def test_find_single_directory(self):
        """Test detection of the directory an archive unpacked to."""
        with TemporaryDirectory() as directory:
            self.assertRaises(MissingArtifactError, find_single_directory, directory)
            os.mkdir(os.path.join(directory, 'six-1.10.0'))
            touch(os.path.join(directory, 'PKG-INFO'))
            assert find_single_directory(directory) == os.path.join(directory, 'six-1.10.0')
            os.mkdir(os.path.join(directory, 'other'))
            self.assertRaises(MissingArtifactError, find_single_directory, directory)
