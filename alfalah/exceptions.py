class AlfalahError(Exception):
    """Base class for everything raised by the Alfalah integration."""


class ValidationError(AlfalahError):
    """Missing or malformed request fields."""


class EnvelopeError(AlfalahError):
    pass


class EncryptionError(EnvelopeError):
    pass


class DecryptionError(EnvelopeError):
    pass


class GatewayError(AlfalahError):
    """The gateway could not be reached or answered with an error."""


class HandshakeError(GatewayError):
    pass


class NotFoundError(AlfalahError):
    pass
