# Import security functions
from .security import (
    build_password_context,
    verify_password,
    get_password_hash,
)

# Import exceptions
from .exceptions import (
    LicenseGateException,
    ValidationException,
    NotFoundException,
    ConflictException,
    ExpiredException,
    InvalidCredentialsException,
    AuthzException,
    TransientStoreException,
    licensegate_exception_handler,
    http_exception_handler,
)
