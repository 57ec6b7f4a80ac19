# sdkdebs: Debian packages for the third party dependencies of our SDKs.
#
# Last Change: October 19, 2026

"""Custom exceptions raised by `sdkdebs`."""


class SdkDebsError(Exception):

    """Base exception for all exceptions explicitly raised by `sdkdebs`."""


class MissingArtifactError(SdkDebsError):

    """
    Raised when an expected file is not where a build step left it.

    Examples are a downloaded source distribution archive that can't be found,
    an archive that didn't unpack to a single directory or a ``*.deb`` archive
    that wasn't generated.
    """


class BuildFailed(SdkDebsError):

    """
    Raised by :class:`~sdkdebs.builder.DebBuilder` when a build step fails.

    The original exception (usually :exc:`executor.ExternalCommandFailed`) is
    available as ``__cause__``.
    """

    def __init__(self, result, results=()):
        """
        Initialize a :class:`BuildFailed` object.

        :param result: The :class:`~sdkdebs.builder.BuildResult` of the failed step.
        :param results: The results of the steps that finished before the
                        failure (an iterable).
        """
        super(BuildFailed, self).__init__("Failed to build %s!" % result.name)
        self.result = result
        self.results = list(results)

    @property
    def returncode(self):
        """The exit status of the external command that failed (an integer or :data:`None`)."""
        return getattr(self.__cause__, 'returncode', None)
