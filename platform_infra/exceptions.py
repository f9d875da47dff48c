"""Errors raised while building a deployment descriptor."""


class DescriptorError(Exception):
    """Base class for local descriptor build errors."""


class ConfigurationError(DescriptorError):
    """Required configuration is missing or invalid."""


class DuplicateDeclarationError(DescriptorError):
    """A declaration name was registered twice in the same graph."""


class UnknownReferenceError(DescriptorError):
    """A declaration references a resource that was never declared."""


class CyclicReferenceError(DescriptorError):
    """The declaration graph contains a reference cycle."""


class UnresolvedValueError(DescriptorError):
    """A deferred value was read before it was resolved."""


class DeferredAlreadyResolvedError(DescriptorError):
    """A deferred value was resolved twice with different values."""
