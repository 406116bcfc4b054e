from .application import base_environment, create_rest, install_error_handlers
from .context import db
from .exceptions import (InvalidQuery, MalformedIdentifier, MalformedValue, NotFound, RegistrationError,
                         RestException, ValidationError, VersionConflict)
from .resources.descriptors import describe_model, selected_fields, uneditable_fields
from .resources.manager import RegistrationReport, RegistrationResult, RegistrationStatus, RestRegistry
