class TarpressError(Exception):
    """Base class for tarpress-specific errors."""

    kind = "error"


# Source archive
class SourceFormatError(TarpressError):
    kind = "source-format"


class ExtractionError(TarpressError):
    kind = "extraction"

    def __init__(self, member: str, message: str):
        super().__init__(f"{member}: {message}")
        self.member = member


# Output side
class CompressionError(TarpressError):
    kind = "compression"


class IntegrityComputeError(TarpressError):
    kind = "integrity"


# Framing policy
class FramingError(TarpressError):
    kind = "framing"


class NameTooLongError(FramingError):
    pass


class NameCollisionError(FramingError):
    pass


class ContentTooLargeError(FramingError):
    pass


# Reading an emitted container back
class ContainerError(TarpressError):
    kind = "container"


class HeaderChecksumError(ContainerError):
    pass


class TerminatorError(ContainerError):
    pass


class TruncatedRecordError(ContainerError):
    pass


class InvalidSettingsError(TarpressError, ValueError):
    kind = "settings"


class ConversionCancelled(TarpressError):
    kind = "cancelled"
