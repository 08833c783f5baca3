"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    CONFIG_ERROR = 4


class PackageExtensions(Enum):
    """Archive extensions and the repodata collection keyed by each.

    Args:
        Enum (string): Filename extension of a conda package archive.
    """

    TAR_BZ2 = ".tar.bz2"
    CONDA = ".conda"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REPODATA_FILENAME = "repodata.json"
    METADATA_SUFFIX = ".json"
    ZSTD_SUFFIX = ".zst"
    FILENAMES_INDEX = "filenames.txt"
    PACKAGENAMES_INDEX = "packagenames.txt"

    DEFAULT_CONDA_HOST = "https://conda.anaconda.org"
    DEFAULT_TIMEOUT_SECONDS = 120
    DEFAULT_PROXY_TIMEOUT_SECONDS = 30
    DEFAULT_MAX_AGE_MINUTES = 1440
    DEFAULT_LISTEN = "localhost:8080"
    DEFAULT_CACHE_CONTROL_MAX_AGE_MINUTES = 1440
    DEFAULT_ORIGINAL_REPODATA_DIR = "repodata-cache/original"
    DEFAULT_FILTERED_REPODATA_DIR = "repodata-cache/filtered"

    JSON_INDENT = " "
    DOWNLOAD_CHUNK_SIZE = 1024 * 1024
    PROXY_CHUNK_SIZE = 64 * 1024
    ZSTD_LEVEL = 10

    USER_AGENT = "condagate/1.0"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "CONDAGATE_LOG_LEVEL"
