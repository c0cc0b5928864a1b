# Import all handlers so they register themselves.
from . import member_activity  # noqa: F401
from . import router  # noqa: F401
