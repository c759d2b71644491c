from .descriptor import PROPERTIES, DatastoreDescriptor, DatastoreNotConfigured, build_descriptor
from .properties import InvalidAppName, PropertyNotFound, resolve_property, validate_app_name
from .service import AppNotRegistered, Manager, configure

__all__ = [
    "PROPERTIES",
    "AppNotRegistered",
    "DatastoreDescriptor",
    "DatastoreNotConfigured",
    "InvalidAppName",
    "Manager",
    "PropertyNotFound",
    "build_descriptor",
    "configure",
    "resolve_property",
    "validate_app_name",
]
