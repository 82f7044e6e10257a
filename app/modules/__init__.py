"""Domain modules package."""

from app.modules.audit import models as audit_models  # noqa: F401
from app.modules.billing import models as billing_models  # noqa: F401
from app.modules.disputes import models as disputes_models  # noqa: F401
from app.modules.jobs import models as jobs_models  # noqa: F401
from app.modules.mentors import models as mentors_models  # noqa: F401
from app.modules.reschedule import models as reschedule_models  # noqa: F401
from app.modules.scheduling import models as scheduling_models  # noqa: F401
from app.modules.sessions import models as sessions_models  # noqa: F401
