"""REST route repository."""
from typing import Optional

from hookrelay.models import RestRoute
from hookrelay.repositories.base_config_repository import BaseConfigRepository


class RestRouteRepository(BaseConfigRepository[RestRoute]):
    """Repository for inbound REST route definitions."""

    model_class = RestRoute
    search_columns = ["name", "description", "route_path"]

    def find_by_path(self, route_path: str) -> Optional[RestRoute]:
        """Look up a route by path; leading/trailing slashes are ignored."""
        return self.db.query(RestRoute).filter(
            RestRoute.route_path == route_path.strip("/")
        ).first()
