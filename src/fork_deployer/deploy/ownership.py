"""Ownership marker for apps created by this service.

The service keeps no local record of the apps it creates. An app is
considered owned when its name starts with the reserved prefix, so the same
marker object must be used when naming new apps and when reclaiming old ones.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class OwnershipMarker:
    prefix: str

    def new_name(self, now: Optional[datetime] = None, rng: Optional[random.Random] = None) -> str:
        """Generate ``prefix + epoch millis + "-" + 0..999``.

        The random suffix lowers, but does not remove, the chance of two
        requests in the same millisecond colliding.
        """
        now = now or datetime.now(timezone.utc)
        rng = rng or random
        millis = int(now.timestamp() * 1000)
        return f"{self.prefix}{millis}-{rng.randint(0, 999)}"

    def owns(self, app_name: str) -> bool:
        return app_name.startswith(self.prefix)
