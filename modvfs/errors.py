"""
Error taxonomy for the virtual module filesystem.

Every failure raised by traversal, installation or module loading derives
from VFSError and carries the offending path or specifier.

    VFSError
    ├── NotFoundError            (NOTFOUND)
    ├── NotADirectoryError       (NOTADIR)
    ├── NotAFileError            (NOTAFILE)
    ├── CyclicReferenceError     (CYCLIC)
    ├── EntryExistsError         (EEXIST)
    ├── ManifestError            (MANIFEST_INVALID)
    ├── FetchError               (FETCH_FAILED)
    ├── NotSyncedError           (NOTSYNC)
    ├── ArchiveFormatError       (EFORMAT)
    └── UnsupportedExtensionError (EEXT)
"""

import builtins
from typing import Optional


class VFSError(Exception):
    """Base class for virtual filesystem errors."""

    code = 'EVFS'

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path is None:
            return f"{self.code}: {self.message}"
        return f"{self.code}: {self.message}, '{self.path}'"


class NotFoundError(VFSError, builtins.FileNotFoundError):
    code = 'NOTFOUND'

    def __init__(self, path: str, message: str = 'no such file or directory'):
        super().__init__(message, path)


class NotADirectoryError(VFSError, builtins.NotADirectoryError):
    code = 'NOTADIR'

    def __init__(self, path: str, message: str = 'not a directory'):
        super().__init__(message, path)


class NotAFileError(VFSError, builtins.IsADirectoryError):
    code = 'NOTAFILE'

    def __init__(self, path: str, message: str = 'illegal operation on a directory'):
        super().__init__(message, path)


class CyclicReferenceError(VFSError):
    code = 'CYCLIC'

    def __init__(self, path: str, message: str = 'too many levels of symbolic links'):
        super().__init__(message, path)


class EntryExistsError(VFSError, builtins.FileExistsError):
    code = 'EEXIST'

    def __init__(self, path: str, message: str = 'entry already exists'):
        super().__init__(message, path)


class ManifestError(VFSError, ValueError):
    """Manifest could not be parsed or lacks a required field."""
    code = 'MANIFEST_INVALID'


class FetchError(VFSError):
    """The remote fetch capability failed for one dependency."""
    code = 'FETCH_FAILED'

    def __init__(self, package: str, constraint: str, message: str = 'fetch failed'):
        super().__init__(message, f"{package}@{constraint}")
        self.package = package
        self.constraint = constraint


class NotSyncedError(VFSError):
    """File content was requested before its fetch completed."""
    code = 'NOTSYNC'

    def __init__(self, path: Optional[str], message: str = 'content not yet available'):
        super().__init__(message, path)


class ArchiveFormatError(VFSError, ValueError):
    code = 'EFORMAT'


class UnsupportedExtensionError(VFSError):
    code = 'EEXT'

    def __init__(self, path: str, extension: str):
        super().__init__(f'extension "{extension}" not supported', path)
        self.extension = extension
