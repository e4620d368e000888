# blockweave/errors.py
"""
Registry error taxonomy.

Every rejected operation raises one of these and leaves the registry
untouched. The ``status`` attribute is the HTTP status the server uses
when reporting the error to a remote caller.
"""

from typing import Dict, Type


class RegistryError(Exception):
    """Base class for all registry rejections."""
    status = 400

    @property
    def code(self) -> str:
        return type(self).__name__


# Validation

class InvalidHash(RegistryError):
    """Data hash is the zero sentinel or not a 32-byte value."""
    status = 400


# Not found

class NodeNotFound(RegistryError):
    """Referenced node id was never created."""
    status = 404

    def __init__(self, node_id):
        super().__init__(f"Node {node_id} not found")
        self.node_id = node_id


# State

class ParentInactive(RegistryError):
    """Child creation against a deactivated parent."""
    status = 409

    def __init__(self, parent_id: int):
        super().__init__(f"Parent node {parent_id} is inactive")
        self.parent_id = parent_id


class AlreadyInactive(RegistryError):
    """Node has already been deactivated."""
    status = 409

    def __init__(self, node_id: int):
        super().__init__(f"Node {node_id} is already inactive")
        self.node_id = node_id


# Authorization

class NotCreator(RegistryError):
    """Caller is not the node's creator."""
    status = 403


class NotOwner(RegistryError):
    """Caller is not the registry owner."""
    status = 403


# Input

class InvalidAddress(RegistryError):
    """Identity is the null address or malformed."""
    status = 400


# Transport

class InvalidSignature(RegistryError):
    """Signed call is missing, stale, or does not verify."""
    status = 400


_ERRORS: Dict[str, Type[RegistryError]] = {
    cls.__name__: cls
    for cls in (
        InvalidHash,
        NodeNotFound,
        ParentInactive,
        AlreadyInactive,
        NotCreator,
        NotOwner,
        InvalidAddress,
        InvalidSignature,
    )
}


def error_from_code(code: str, message: str) -> RegistryError:
    """
    Rebuild a registry error from its wire representation.

    Unknown codes come back as a plain RegistryError carrying the message.
    """
    cls = _ERRORS.get(code)
    if cls is None:
        return RegistryError(message)
    # Bypass per-class __init__ signatures; the message is already formatted
    err = cls.__new__(cls)
    RegistryError.__init__(err, message)
    return err
