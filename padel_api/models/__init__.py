# Import every model here so Alembic autogenerate can discover them
# and so Base.metadata.create_all() works in tests.
# Dependency order matters: referenced tables must come before tables
# that FK-reference them.

from padel_api.models.user import User                          # noqa: F401
from padel_api.models.community import Community, CommunityMember  # noqa: F401

# templates must be registered BEFORE sessions (sessions FK-reference them)
from padel_api.models.session_template import SessionTemplate   # noqa: F401
from padel_api.models.session import Session                    # noqa: F401
from padel_api.models.booking import Booking                    # noqa: F401
from padel_api.models.payment import Payment                    # noqa: F401
