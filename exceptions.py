class BackdropError(Exception):
    """Base exception for all Backdrop errors."""

    error_code: str = "internal_error"

    def __init__(self, message: str, **kwargs):
        self.message = message
        self.details = kwargs
        super().__init__(message)


class UnsupportedInputError(BackdropError):
    """Input is neither an image type nor a known HEIC/HEIF file."""

    error_code = "unsupported_input"


class ConversionFailedError(BackdropError):
    """External HEIC-to-native conversion failed."""

    error_code = "conversion_failed"


class ConversionTimeoutError(ConversionFailedError):
    """External conversion exceeded timeout."""

    error_code = "conversion_timeout"


class DecodeFailedError(BackdropError):
    """No decode path produced a raster."""

    error_code = "decode_failed"


class InvalidDimensionsError(BackdropError):
    """Decoded raster (or requested size) has a zero or negative side."""

    error_code = "invalid_dimensions"


class SurfaceUnavailableError(BackdropError):
    """Rasterization surface could not be acquired."""

    error_code = "surface_unavailable"


class EncodingFailedError(BackdropError):
    """Output codec produced no bytes."""

    error_code = "encoding_failed"
