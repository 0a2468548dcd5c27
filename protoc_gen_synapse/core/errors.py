"""Errors raised while generating code.

Any GeneratorError aborts the run; the plugin reports its message through
the CodeGeneratorResponse error field and emits no files.
"""


class GeneratorError(Exception):
    """Base class for fatal generation errors."""


class DecodeError(GeneratorError):
    """The CodeGeneratorRequest bytes could not be decoded."""


class UnknownBackendError(GeneratorError):
    def __init__(self, name: str):
        super().__init__(f"Unknown backend: {name}")
        self.name = name


class MissingFileError(GeneratorError):
    def __init__(self, file_name: str):
        super().__init__(f"File descriptor not found: {file_name}")
        self.file_name = file_name


class OptionsNotLoadedError(GeneratorError):
    """An options lookup happened before the request was preprocessed."""
